"""Jira Cloud REST 客户端。

- 认证: Basic base64(email:api_token)
- 平台接口: /rest/api/3/...
- 敏捷接口: /rest/agile/1.0/...（仅用于查找当前活跃 Sprint）

每个工具只调用这里的一个公开方法；所有失败统一抛出 JiraError，
由 ToolCatalog 转换为失败的 ToolResult 反馈给模型。
"""

import base64
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from indigo_core.config.settings import settings
from indigo_core.domain.exceptions import JiraError
from indigo_core.infrastructure.logging.logger import logger


SEARCH_FIELDS = "summary,status,assignee,issuetype,priority"
UNASSIGNED = {"", "none", "unassigned", "nobody"}
CURRENT_USER = {"me", "myself", "currentuser", "currentuser()"}
_STATUS_CODES = {
    401: "JIRA_AUTH_ERROR",
    403: "JIRA_AUTH_ERROR",
    404: "JIRA_NOT_FOUND",
    429: "JIRA_RATE_LIMIT",
}


def to_adf(text: str) -> Dict[str, Any]:
    """把纯文本转换为 Atlassian Document Format（每行一个段落）。"""

    paragraphs = [
        {"type": "paragraph", "content": [{"type": "text", "text": line}]}
        for line in (text or "").splitlines()
        if line.strip()
    ]
    return {"type": "doc", "version": 1, "content": paragraphs or [{"type": "paragraph", "content": []}]}


def project_of(issue_key: str) -> str:
    return issue_key.rsplit("-", 1)[0]


def _summarize_issue(raw: Mapping[str, Any]) -> Dict[str, Any]:
    fields = raw.get("fields") or {}
    assignee = fields.get("assignee") or {}
    return {
        "key": raw.get("key"),
        "summary": fields.get("summary"),
        "status": (fields.get("status") or {}).get("name"),
        "assignee": assignee.get("displayName") or assignee.get("emailAddress"),
        "type": (fields.get("issuetype") or {}).get("name"),
        "priority": (fields.get("priority") or {}).get("name"),
    }


class JiraClient:
    """Jira REST API 的异步客户端。"""

    def __init__(self, cfg=settings):
        self._settings = cfg
        self._sprint_cache: Dict[str, int] = {}

    # ---- 查询 ----

    async def search_issues(self, jql: str, max_results: int = 50) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET",
            "/rest/api/3/search/jql",
            params={"jql": jql, "maxResults": max_results, "fields": SEARCH_FIELDS},
        )
        return [_summarize_issue(item) for item in (data or {}).get("issues", [])]

    async def get_transitions(self, key: str) -> List[Dict[str, str]]:
        data = await self._request("GET", f"/rest/api/3/issue/{key}/transitions")
        return [
            {
                "id": str(t.get("id")),
                "name": t.get("name") or "",
                "to": (t.get("to") or {}).get("name") or "",
            }
            for t in (data or {}).get("transitions", [])
        ]

    async def get_components(self, project: str) -> List[str]:
        data = await self._request("GET", f"/rest/api/3/project/{project}/components")
        return [c.get("name") for c in (data or []) if c.get("name")]

    async def fetch_changelog(self, key: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"/rest/api/3/issue/{key}/changelog")
        entries = []
        for history in (data or {}).get("values", []):
            entries.append(
                {
                    "author": (history.get("author") or {}).get("displayName"),
                    "created": history.get("created"),
                    "items": [
                        {"field": i.get("field"), "from": i.get("fromString"), "to": i.get("toString")}
                        for i in history.get("items", [])
                    ],
                }
            )
        return entries

    async def resolve_account_id(self, user: str) -> str:
        """邮箱 -> accountId；me/currentUser -> 当前账号；其他值视为 accountId。"""

        text = user.strip()
        if text.lower() in CURRENT_USER:
            me = await self._request("GET", "/rest/api/3/myself")
            return (me or {}).get("accountId") or ""
        if "@" not in text:
            return text
        found = await self._request("GET", "/rest/api/3/user/search", params={"query": text})
        for item in found or []:
            if item.get("accountId"):
                return item["accountId"]
        raise JiraError(code="JIRA_USER_NOT_FOUND", message=f"No Jira user matches {text}", http_status=404)

    async def active_sprint_id(self, project: str) -> int:
        if project in self._sprint_cache:
            return self._sprint_cache[project]
        boards = await self._request("GET", "/rest/agile/1.0/board", params={"projectKeyOrId": project})
        for board in (boards or {}).get("values", []):
            sprints = await self._request(
                "GET", f"/rest/agile/1.0/board/{board['id']}/sprint", params={"state": "active"}
            )
            values = (sprints or {}).get("values", [])
            if values:
                self._sprint_cache[project] = int(values[0]["id"])
                return self._sprint_cache[project]
        raise JiraError(
            code="JIRA_SPRINT_NOT_FOUND",
            message=f"No active sprint found for project {project}",
            http_status=404,
        )

    # ---- 变更 ----

    async def create_issue(
        self,
        project: str,
        summary: str,
        issue_type: str = "Story",
        **extra: Any,
    ) -> str:
        fields: Dict[str, Any] = {
            "project": {"key": project},
            "summary": summary,
            "issuetype": {"name": issue_type or "Story"},
        }
        mapped, _ = await self._map_fields({k: v for k, v in extra.items() if v is not None}, project)
        fields.update(mapped)
        data = await self._request("POST", "/rest/api/3/issue", json_body={"fields": fields})
        key = (data or {}).get("key")
        if not key:
            raise JiraError(code="JIRA_API_ERROR", message="Jira did not return the created issue key")
        return key

    async def update_issue(self, key: str, fields: Mapping[str, Any]) -> List[str]:
        """更新字段，返回被忽略（无法映射）的字段名列表。"""

        mapped, ignored = await self._map_fields(fields, project_of(key))
        if not mapped:
            raise JiraError(
                code="JIRA_INVALID_FIELDS",
                message=f"No updatable fields in: {', '.join(sorted(fields)) or '(empty)'}",
            )
        await self._request("PUT", f"/rest/api/3/issue/{key}", json_body={"fields": mapped})
        return ignored

    async def assign_issue(self, key: str, user: Optional[str]) -> Optional[str]:
        account_id = None
        if user and user.strip().lower() not in UNASSIGNED:
            account_id = await self.resolve_account_id(user)
        await self._request("PUT", f"/rest/api/3/issue/{key}/assignee", json_body={"accountId": account_id})
        return account_id

    async def log_work(self, key: str, seconds: int) -> None:
        if seconds <= 0:
            raise JiraError(code="JIRA_INVALID_FIELDS", message="Time spent must be a positive number of seconds")
        await self._request("POST", f"/rest/api/3/issue/{key}/worklog", json_body={"timeSpentSeconds": seconds})

    async def change_status(self, key: str, status: str) -> str:
        """按目标状态名或 transition 名匹配（不区分大小写），返回目标状态名。"""

        transitions = await self.get_transitions(key)
        wanted = status.strip().lower()
        for t in transitions:
            if t["to"].lower() == wanted or t["name"].lower() == wanted:
                await self._request(
                    "POST",
                    f"/rest/api/3/issue/{key}/transitions",
                    json_body={"transition": {"id": t["id"]}},
                )
                return t["to"] or t["name"]
        available = ", ".join(f"{t['name']} -> {t['to']}" for t in transitions) or "none"
        raise JiraError(
            code="JIRA_TRANSITION_NOT_FOUND",
            message=f"No transition to '{status}' for {key}. Available: {available}",
        )

    async def add_comment(self, key: str, text: str) -> Optional[str]:
        data = await self._request("POST", f"/rest/api/3/issue/{key}/comment", json_body={"body": to_adf(text)})
        return (data or {}).get("id")

    async def delete_issue(self, key: str) -> None:
        await self._request("DELETE", f"/rest/api/3/issue/{key}")

    async def add_watcher(self, key: str, user: str) -> str:
        account_id = await self.resolve_account_id(user)
        await self._request("POST", f"/rest/api/3/issue/{key}/watchers", content=json.dumps(account_id))
        return account_id

    async def link_issues(self, key: str, other: str, link_type: str) -> None:
        await self._request(
            "POST",
            "/rest/api/3/issueLink",
            json_body={
                "type": {"name": link_type},
                "inwardIssue": {"key": key},
                "outwardIssue": {"key": other},
            },
        )

    async def update_classification(self, key: str, parent: str, child: Optional[str] = None) -> None:
        field = self._custom_field("jira_classification_field", "classification")
        value: Dict[str, Any] = {"value": parent}
        if child:
            value["child"] = {"value": child}
        await self._request("PUT", f"/rest/api/3/issue/{key}", json_body={"fields": {field: value}})

    async def update_pcm(self, key: str, object_id: Optional[str]) -> None:
        field = self._custom_field("jira_pcm_field", "PCM")
        value = [{"id": object_id}] if object_id else None
        await self._request("PUT", f"/rest/api/3/issue/{key}", json_body={"fields": {field: value}})

    # ---- 辅助方法 ----

    async def _map_fields(self, fields: Mapping[str, Any], project: str) -> Tuple[Dict[str, Any], List[str]]:
        """把友好的字段名映射为 Jira REST 字段。"""

        out: Dict[str, Any] = {}
        ignored: List[str] = []
        for name, value in fields.items():
            if name == "summary":
                out["summary"] = str(value)
            elif name == "description":
                out["description"] = to_adf(str(value))
            elif name == "assignee":
                if value is None or str(value).strip().lower() in UNASSIGNED:
                    out["assignee"] = None
                else:
                    out["assignee"] = {"accountId": await self.resolve_account_id(str(value))}
            elif name == "priority":
                out["priority"] = {"name": str(value)}
            elif name == "labels":
                out["labels"] = _as_list(value)
            elif name == "components":
                out["components"] = [{"name": c} for c in _as_list(value)]
            elif name in ("originalEstimate", "remainingEstimate"):
                out.setdefault("timetracking", {})[name] = str(value)
            elif name == "sprint":
                out[self._settings.jira_sprint_field] = await self._sprint_value(value, project)
            elif name == "epic":
                out[self._settings.jira_epic_field] = str(value)
            elif name.startswith("customfield_"):
                out[name] = value
            else:
                ignored.append(name)
        if ignored:
            logger.warning("Ignored unknown Jira fields", extra={"extra": {"fields": ignored}})
        return out, ignored

    async def _sprint_value(self, value: Any, project: str) -> int:
        if str(value).strip().lower() in {"current", "active"}:
            return await self.active_sprint_id(project)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise JiraError(code="JIRA_INVALID_FIELDS", message=f"Invalid sprint id: {value!r}")

    def _custom_field(self, attr: str, label: str) -> str:
        field = getattr(self._settings, attr, None)
        if not field:
            raise JiraError(
                code="JIRA_NOT_CONFIGURED",
                message=f"The {label} field is not configured ({attr.upper()})",
            )
        return field

    def _base_url(self) -> str:
        base = getattr(self._settings, "jira_base_url", None)
        if not base or not getattr(self._settings, "jira_email", None) or not getattr(self._settings, "jira_api_key", None):
            raise JiraError(
                code="JIRA_NOT_CONFIGURED",
                message="JIRA_BASE_URL, JIRA_EMAIL and JIRA_API_KEY must be set",
            )
        return base.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        raw = f"{self._settings.jira_email}:{self._settings.jira_api_key}".encode("utf-8")
        return {
            "Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        content: Optional[str] = None,
    ) -> Any:
        url = f"{self._base_url()}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    content=content,
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            raise JiraError(code="JIRA_NETWORK_ERROR", message=f"Network error talking to Jira: {e}")
        logger.log(
            logging.DEBUG,
            "Jira request",
            extra={"extra": {"method": method, "path": path, "status": resp.status_code}},
        )
        if resp.status_code >= 400:
            raise JiraError(
                code=_STATUS_CODES.get(resp.status_code, "JIRA_API_ERROR"),
                message=f"Jira {method} {path} failed ({resp.status_code}): {_error_detail(resp)}",
                http_status=resp.status_code,
            )
        if not resp.text:
            return None
        try:
            return resp.json()
        except ValueError:
            return None


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _error_detail(resp: Any) -> str:
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or "")[:300]
    if not isinstance(data, dict):
        return (resp.text or "")[:300]
    parts = list(data.get("errorMessages") or [])
    parts.extend(f"{k}: {v}" for k, v in (data.get("errors") or {}).items())
    return "; ".join(parts) or (resp.text or "")[:300]
