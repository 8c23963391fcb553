"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system prompt 模板，
模板中的 $tools / $max_iterations 占位符由 render_system_prompt 填充。
"""

from pathlib import Path
from string import Template


PROMPTS_DIR = Path(__file__).resolve().parent


def load_system_prompt(agent_type: str = "indigo", locale: str = "en") -> str:
    """根据 Agent 类型和语言加载系统提示词模板文本。"""

    fname = PROMPTS_DIR / locale / f"{agent_type}_system.md"
    return fname.read_text(encoding="utf-8")


def render_system_prompt(tools_section: str, max_iterations: int, template: str = "") -> str:
    """填充模板占位符，返回最终发给模型的 system prompt。"""

    text = template or load_system_prompt()
    return Template(text).safe_substitute(tools=tools_section, max_iterations=max_iterations).strip()
