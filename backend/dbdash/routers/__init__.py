"""
路由模块包 (Router Module Package)

- dashboard.py: 最新指标、历史趋势、健康检查、调度器状态
- dashboard_ws.py: 仪表盘 WebSocket 实时推送
- alerts.py: 告警查询与确认
- dba.py: 管理操作（终止会话、刷新缓存、切换日志、检查点）
"""
