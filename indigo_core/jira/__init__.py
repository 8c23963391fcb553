"""Jira Cloud REST 访问层。"""

from indigo_core.jira.client import JiraClient, to_adf

__all__ = ["JiraClient", "to_adf"]
