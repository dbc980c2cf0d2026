from __future__ import annotations

import argparse
import json
import sys
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Literal, TypedDict


class HttpResult(TypedDict):
    status: int
    headers: dict[str, str]
    body: bytes


class Finding(TypedDict):
    severity: Literal["high", "medium", "low", "info"]
    title: str
    affected_endpoints: list[str]
    description: str
    evidence: dict[str, object]


@dataclass(frozen=True)
class CreatedEvent:
    event_id: str
    owner_token: str


@dataclass(frozen=True)
class CreatedResponse:
    response_id: str
    edit_token: str


def _json_bytes(payload: object) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _http_request(
    *,
    method: str,
    url: str,
    json_body: object | None = None,
    timeout_s: float = 15.0,
) -> HttpResult:
    data = None if json_body is None else _json_bytes(json_body)
    request_headers = {
        "User-Agent": "Atsumeru-TokenProbe/1.0",
        "Accept": "application/json",
    }
    if data is not None:
        request_headers["Content-Type"] = "application/json"
    req = urllib.request.Request(url, data=data, headers=request_headers, method=method)
    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            return {
                "status": int(resp.status),
                "headers": {k.lower(): v for k, v in resp.headers.items()},
                "body": resp.read(),
            }
    except urllib.error.HTTPError as exc:
        return {
            "status": int(exc.code),
            "headers": {k.lower(): v for k, v in exc.headers.items()},
            "body": exc.read(),
        }


def _json(result: HttpResult) -> object:
    if not result["body"]:
        return None
    return json.loads(result["body"].decode("utf-8"))


def _url(base_url: str, path: str, **query: str) -> str:
    if not query:
        return f"{base_url}{path}"
    return f"{base_url}{path}?{urllib.parse.urlencode(query)}"


def _create_event(*, base_url: str, title: str) -> CreatedEvent:
    resp = _http_request(
        method="POST",
        url=_url(base_url, "/events"),
        json_body={"title": title, "collecting": True, "amount": 1000},
    )
    if resp["status"] != 200:
        raise RuntimeError(f"Create event failed: {resp['status']} {resp['body'][:200]!r}")
    data = _json(resp)
    assert isinstance(data, dict)
    event_id = str(data.get("eventId") or "")
    owner_token = str(data.get("ownerToken") or "")
    if not event_id or not owner_token:
        raise RuntimeError("Create event response missing eventId or ownerToken")
    return CreatedEvent(event_id=event_id, owner_token=owner_token)


def _create_response(*, base_url: str, event_id: str, name: str) -> CreatedResponse:
    resp = _http_request(
        method="POST",
        url=_url(base_url, f"/events/{event_id}/responses"),
        json_body={"name": name, "rsvp": "yes"},
    )
    if resp["status"] != 200:
        raise RuntimeError(f"Create response failed: {resp['status']} {resp['body'][:200]!r}")
    data = _json(resp)
    assert isinstance(data, dict)
    return CreatedResponse(
        response_id=str(data.get("responseId") or ""),
        edit_token=str(data.get("editToken") or ""),
    )


def _assert_status(
    *,
    findings: list[Finding],
    title: str,
    expected: int,
    method: str,
    url: str,
    json_body: object | None = None,
) -> HttpResult:
    resp = _http_request(method=method, url=url, json_body=json_body)
    if resp["status"] != expected:
        findings.append(
            {
                "severity": "high",
                "title": title,
                "affected_endpoints": [f"{method} {urllib.parse.urlparse(url).path}"],
                "description": f"Expected HTTP {expected} but got {resp['status']}.",
                "evidence": {
                    "expected_status": expected,
                    "actual_status": resp["status"],
                    "body_prefix": resp["body"][:200].decode("utf-8", errors="replace"),
                },
            }
        )
    return resp


def _assert_not_leaked(
    *,
    findings: list[Finding],
    title: str,
    resp: HttpResult,
    secret: str,
    endpoint: str,
) -> None:
    if secret.encode("utf-8") in resp["body"]:
        findings.append(
            {
                "severity": "high",
                "title": title,
                "affected_endpoints": [endpoint],
                "description": "An owner token appeared in a response that does not require it.",
                "evidence": {"status": resp["status"], "body_length": len(resp["body"])},
            }
        )


def run_probe(*, base_url: str) -> list[Finding]:
    findings: list[Finding] = []
    first = _create_event(base_url=base_url, title="Token probe A")
    second = _create_event(base_url=base_url, title="Token probe B")
    answer = _create_response(base_url=base_url, event_id=first.event_id, name="Probe")

    manage = f"/events/{first.event_id}/manage"
    owner_list = f"/events/{first.event_id}/responses"
    self_edit = f"/events/{first.event_id}/responses/{answer.response_id}"
    paid = f"{self_edit}/paid"
    settings_body = {"collecting": True, "amount": 1000}

    _assert_status(
        findings=findings,
        title="Settings update accepted without a token",
        expected=401,
        method="PATCH",
        url=_url(base_url, manage),
        json_body=settings_body,
    )
    _assert_status(
        findings=findings,
        title="Settings update accepted another event's owner token",
        expected=403,
        method="PATCH",
        url=_url(base_url, manage, token=second.owner_token),
        json_body=settings_body,
    )
    _assert_status(
        findings=findings,
        title="Owner listing accepted another event's owner token",
        expected=403,
        method="GET",
        url=_url(base_url, owner_list, token=second.owner_token),
    )
    _assert_status(
        findings=findings,
        title="Paid toggle accepted an edit token as owner token",
        expected=403,
        method="PATCH",
        url=_url(base_url, paid, token=answer.edit_token),
        json_body={"paid": True},
    )
    _assert_status(
        findings=findings,
        title="Self edit accepted the owner token as edit token",
        expected=403,
        method="PATCH",
        url=_url(base_url, self_edit, edit=first.owner_token),
        json_body={"rsvp": "no"},
    )
    _assert_status(
        findings=findings,
        title="Self edit reachable through another event's path",
        expected=404,
        method="PATCH",
        url=_url(
            base_url,
            f"/events/{second.event_id}/responses/{answer.response_id}",
            edit=answer.edit_token,
        ),
        json_body={"rsvp": "no"},
    )

    for path in (f"/events/{first.event_id}", f"/events/{first.event_id}/responses/public"):
        resp = _http_request(method="GET", url=_url(base_url, path))
        _assert_not_leaked(
            findings=findings,
            title="Owner token exposed by a public endpoint",
            resp=resp,
            secret=first.owner_token,
            endpoint=f"GET {path}",
        )

    public = _json(_http_request(method="GET", url=_url(base_url, owner_list + "/public")))
    if isinstance(public, dict) and any(
        "edit_token" in row for row in public.get("responses", [])
    ):
        findings.append(
            {
                "severity": "info",
                "title": "Edit tokens are visible to anyone with the event link",
                "affected_endpoints": [f"GET {owner_list}/public"],
                "description": "Accepted tradeoff: participants can edit any row by name.",
                "evidence": {"rows": len(public.get("responses", []))},
            }
        )
    return findings


def _render_report(findings: list[Finding]) -> str:
    lines = ["# Atsumeru token probe", "", "## Findings", ""]
    if not findings:
        lines.append("- No issues detected by this probe.")
        return "\n".join(lines) + "\n"
    for idx, finding in enumerate(findings, start=1):
        lines.append(f"### {idx}. [{finding['severity'].upper()}] {finding['title']}")
        lines.append("")
        for ep in finding["affected_endpoints"]:
            lines.append(f"- `{ep}`")
        lines.append(f"- {finding['description']}")
        for key, value in finding["evidence"].items():
            lines.append(f"- `{key}`: `{value}`")
        lines.append("")
    return "\n".join(lines) + "\n"


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(description="Check Atsumeru token rules on a dev server")
    parser.add_argument(
        "--base-url",
        required=True,
        help="Base URL for the target Atsumeru instance",
    )
    parser.add_argument(
        "--out-report",
        default="token_probe_report.md",
        help="Write markdown report to this path (default: %(default)s)",
    )
    args = parser.parse_args(argv)

    findings = run_probe(base_url=args.base_url.rstrip("/"))
    with open(args.out_report, "w", encoding="utf-8") as handle:
        handle.write(_render_report(findings))

    print(f"Wrote `{args.out_report}`")
    print(f"Findings: {len(findings)}")
    for finding in findings:
        print(f"- {finding['severity']}: {finding['title']}")

    return 0 if not any(f["severity"] in {"high", "medium"} for f in findings) else 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
