"""数据库实例监控仪表盘后端 (Database Instance Monitoring Dashboard Backend)"""

__version__ = "0.1.0"
