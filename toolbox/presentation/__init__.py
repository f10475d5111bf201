"""表现层：HTTP 路由"""
