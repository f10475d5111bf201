"""AiQiji 工具箱后端"""

__version__ = "1.0.0"
