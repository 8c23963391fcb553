"""Agent 层：循环引擎与 Indigo 助手包装。"""
