"""Rewrite recommendation issue references after merge stages drop issues."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace

from ..models import Recommendation


def _remap_one(rec: Recommendation, remap: Mapping[str, str]) -> Recommendation:
    if not any(ref in remap for ref in rec.referenced_ids()):
        return rec
    issue_id = remap.get(rec.issue_id, rec.issue_id)
    related: tuple[str, ...] | None = None
    if rec.related_issue_ids is not None:
        rewritten: list[str] = []
        for rid in rec.related_issue_ids:
            target = remap.get(rid, rid)
            if target != issue_id and target not in rewritten:
                rewritten.append(target)
        related = tuple(rewritten) or None
    return replace(rec, issue_id=issue_id, related_issue_ids=related)


def remap_recommendations(
    recommendations: list[Recommendation], remap: Mapping[str, str]
) -> list[Recommendation]:
    """Point every recommendation at surviving issue ids.

    ``issue_id`` and each related id are looked up once in *remap*.  Unlike a
    plain substitution, related ids that collapse onto ``issue_id`` or onto an
    earlier related id are dropped, and a related list left empty becomes
    ``None``, so a recommendation never lists the same issue twice.
    Recommendations that reference no remapped id are returned as-is.
    """
    if not remap:
        return recommendations
    return [_remap_one(rec, remap) for rec in recommendations]
