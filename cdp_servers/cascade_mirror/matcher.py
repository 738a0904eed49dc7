"""Target matching: keyword scoring and window/project attribution."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

# Window titles of editor hosts look like "file - project - Visual Studio Code".
_EDITOR_TITLE_MARKERS = ("Visual Studio Code", "VSCodium", "Code - OSS")


@dataclass(frozen=True)
class TargetDescriptor:
    id: str
    title: str
    url: str
    type: str
    ws_url: str
    port: int
    parent_id: str | None = None
    project: str = field(default="", compare=False)

    @classmethod
    def from_json(cls, raw: dict[str, Any], port: int) -> TargetDescriptor:
        parent = raw.get("parentId")
        return cls(
            id=str(raw.get("id") or ""),
            title=str(raw.get("title") or ""),
            url=str(raw.get("url") or ""),
            type=str(raw.get("type") or "page"),
            ws_url=str(raw.get("webSocketDebuggerUrl") or ""),
            port=int(port),
            parent_id=str(parent) if parent else None,
        )

    def with_project(self, project: str) -> TargetDescriptor:
        return TargetDescriptor(
            id=self.id,
            title=self.title,
            url=self.url,
            type=self.type,
            ws_url=self.ws_url,
            port=self.port,
            parent_id=self.parent_id,
            project=project,
        )


def normalize(value: object) -> str:
    return str(value or "").lower()


def keyword_score(text: str, keywords: Iterable[str]) -> int:
    """Number of keywords found in `text` (case-insensitive substring match)."""
    lowered = normalize(text)
    if not lowered:
        return 0
    return sum(1 for kw in keywords if kw and kw.lower() in lowered)


def score(target: TargetDescriptor, title_keywords: Iterable[str], url_keywords: Iterable[str]) -> int:
    return keyword_score(target.title, title_keywords) + keyword_score(target.url, url_keywords)


def matches(target: TargetDescriptor, title_keywords: Iterable[str], url_keywords: Iterable[str]) -> bool:
    return score(target, title_keywords, url_keywords) > 0


def matches_fallback(target: TargetDescriptor, keyword: str) -> bool:
    kw = normalize(keyword)
    return bool(kw) and (kw in normalize(target.url) or kw in normalize(target.title))


def rank_for_display(
    targets: list[TargetDescriptor],
    preferred_title_keywords: Iterable[str],
    preferred_url_keywords: Iterable[str],
) -> list[TargetDescriptor]:
    """Stable sort by preference score; never drops or adds targets."""
    titles = list(preferred_title_keywords)
    urls = list(preferred_url_keywords)
    return sorted(targets, key=lambda t: -score(t, titles, urls))


def project_label(title: str) -> str:
    """Project name embedded in an editor window title, or ''."""
    if not any(marker in title for marker in _EDITOR_TITLE_MARKERS):
        return ""
    parts = title.split(" - ")
    if len(parts) >= 3:
        return parts[-2].strip()
    if len(parts) == 2:
        return parts[0].strip()
    return ""


def window_labels(batch: Iterable[TargetDescriptor]) -> dict[str, str]:
    labels: dict[str, str] = {}
    for target in batch:
        if target.type != "page" or not target.id:
            continue
        label = project_label(target.title)
        if label:
            labels[target.id] = label
    return labels


def attribute_projects(batch: list[TargetDescriptor], candidates: list[TargetDescriptor]) -> list[TargetDescriptor]:
    """Label each candidate with its hosting window's project.

    Parent window label when resolvable, else the first label seen in the
    batch, else blank.
    """
    labels = window_labels(batch)
    first = next(iter(labels.values()), "")
    out: list[TargetDescriptor] = []
    for target in candidates:
        if target.parent_id and target.parent_id in labels:
            out.append(target.with_project(labels[target.parent_id]))
        else:
            out.append(target.with_project(first))
    return out


__all__ = [
    "TargetDescriptor",
    "attribute_projects",
    "keyword_score",
    "matches",
    "matches_fallback",
    "normalize",
    "project_label",
    "rank_for_display",
    "score",
    "window_labels",
]
