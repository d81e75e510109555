"""JSON export of a resolution result."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from report.models import ArtifactDownloadReport, ConfigurationResolveReport, ResolutionResult

logger = logging.getLogger(__name__)


def _artifact(adr: ArtifactDownloadReport) -> Dict[str, Any]:
    artifact = adr.artifact
    mrid = artifact.module_revision_id
    return {
        "organisation": mrid.organisation,
        "module": mrid.name,
        "revision": mrid.revision,
        "branch": mrid.branch,
        "artifact": artifact.name,
        "type": artifact.type,
        "ext": artifact.ext,
        "extra": artifact.attributes,
        "status": adr.status.value,
        "location": adr.local_file,
        "isLocal": adr.is_local,
        "origin": adr.origin,
        "size": adr.size,
        "elapsedMs": adr.elapsed_ms,
        "unpacked": adr.unpacked_file,
        "message": adr.message,
    }


def _configuration(report: ConfigurationResolveReport) -> Dict[str, Any]:
    return {
        "modules": [
            {
                "id": str(m.id),
                "resolver": m.resolver_name,
                "status": m.descriptor.status,
                "publication": m.publication_date.isoformat() if m.publication_date else None,
                "callers": [str(c) for c in report.callers_of(m.id)],
            }
            for m in report.modules
        ],
        "evicted": [
            {
                "id": str(e.module_revision_id),
                "evictedBy": [str(w) for w in e.evicted_by],
                "conflictManager": e.conflict_manager,
            }
            for e in report.evicted
        ],
        "unresolved": [
            {"id": str(u.requested), "callers": [str(c) for c in u.callers], "message": u.message}
            for u in report.unresolved
        ],
        "artifacts": [_artifact(a) for a in report.artifact_reports],
        "order": [str(m) for m in report.sorted_modules],
    }


def result_to_dict(result: ResolutionResult, include_trace: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "resolveId": result.resolve_id,
        "module": str(result.module_revision_id),
        "hasError": result.has_error,
        "resolveTimeMs": result.resolve_time_ms,
        "downloadTimeMs": result.download_time_ms,
        "configurations": {name: _configuration(r) for name, r in result.configurations.items()},
        "cycles": [[str(m) for m in cycle] for cycle in result.cycles],
        "problems": list(result.problems),
        "summary": result.summary(),
    }
    if include_trace:
        data["trace"] = [
            {"action": e.action, "location": e.location, "resolver": e.resolver} for e in result.trace
        ]
    return data


def export_json(result: ResolutionResult, path: Optional[str] = None, include_trace: bool = False) -> str:
    """Serialize ``result``; also write it to ``path`` when given."""
    text = json.dumps(result_to_dict(result, include_trace), ensure_ascii=False, indent=4)
    if path:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        logger.info("JSON file has been successfully exported at: %s", path)
    return text
