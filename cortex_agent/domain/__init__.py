"""领域层模型与协议。

包含：
- models: Message / ContentBlock / TableData / ProcessingState。
- conversation: 会话状态存储 ConversationStateStore 与只读快照。
- exceptions: 业务异常类型定义。
"""
