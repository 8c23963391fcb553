"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult 模型。
- loop: Agent 循环的状态机模型（Action、LoopState、TurnOutcome 等）。
- exceptions: 业务异常类型定义。
"""
