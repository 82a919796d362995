"""Agent 工具声明与资源配置。"""
