"""Exchange 编排：累加器、请求构建、取消令牌、LangGraph 状态图与编排器。"""
