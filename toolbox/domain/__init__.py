"""领域层：与存储无关的业务规则"""
