"""工具系统：参数访问器、工具定义、工具目录与 Jira 工具集。"""
