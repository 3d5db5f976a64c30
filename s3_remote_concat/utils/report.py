"""Report generation utilities."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from ..results import ConcatReport

LOGGER = logging.getLogger(__name__)


class ReportGenerator:
    """Produces human-readable and JSON reports summarising a run."""

    def generate(self, report: ConcatReport, output_dir: str) -> Dict[str, Path]:
        """Write text and JSON reports into ``output_dir`` and return their paths."""
        directory = Path(output_dir).expanduser().resolve()
        directory.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        base_name = f"report_{timestamp}"
        text_path = directory / f"{base_name}.txt"
        json_path = directory / f"{base_name}.json"

        text_path.write_text(self.render_text(report), encoding="utf-8")
        json_path.write_text(
            json.dumps(self.build_json(report), default=self._json_serializer, indent=2),
            encoding="utf-8",
        )

        LOGGER.info("Generated reports: %s, %s", text_path, json_path)
        return {"text": text_path, "json": json_path}

    def render_text(self, report: ConcatReport) -> str:
        lines: List[str] = []
        lines.append("=" * 80)
        lines.append("S3 Remote Concatenation Report" + (" (dry run)" if report.dry_run else ""))
        lines.append("=" * 80)
        lines.append("")
        lines.append(f"Source: s3://{report.bucket}/{report.prefix}")
        lines.append(f"Source Pattern: {report.source_pattern}")
        lines.append(f"Target Pattern: {report.target_pattern}")
        lines.append(f"Cleanup: {'yes' if report.cleanup else 'no'}")
        lines.append(f"Duration (s): {report.duration_seconds:.2f}")
        lines.append("")
        lines.append("Summary")
        lines.append("-" * 80)
        lines.append(f"Target Keys: {len(report.targets)}")
        for status, count in report.get_status_counts().items():
            if count:
                lines.append(f"{status.replace('_', ' ').title()}: {count}")
        lines.append("")

        for target in report.targets:
            lines.append(f"[{target.status.value}] {target.target_key}")
            if target.reason:
                lines.append(f"  Reason: {target.reason}")
            for group in target.groups:
                lines.append(
                    f"  -> {group.target_key} ({len(group.source_keys)} part(s), {group.get_size_mb():.2f} MB)"
                )
                for idx, key in enumerate(group.source_keys, start=1):
                    lines.append(f"     {idx}. {key}")
            if target.unplaceable_keys:
                lines.append(f"  Unplaced ({len(target.unplaceable_keys)}):")
                for key in target.unplaceable_keys:
                    lines.append(f"     - {key}")
            for message in target.abort_failures:
                lines.append(f"  Abort failed: {message}")
            if target.deleted_keys:
                lines.append(f"  Removed {len(target.deleted_keys)} source object(s)")
            for key, message in target.delete_failures:
                lines.append(f"  Unable to remove {key} :: {message}")
            lines.append("")

        return "\n".join(lines)

    def build_json(self, report: ConcatReport) -> Dict[str, object]:
        return {
            "generated_at": datetime.now(timezone.utc),
            "bucket": report.bucket,
            "prefix": report.prefix,
            "source_pattern": report.source_pattern,
            "target_pattern": report.target_pattern,
            "dry_run": report.dry_run,
            "cleanup": report.cleanup,
            "duration_seconds": report.duration_seconds,
            "exit_code": report.exit_code,
            "summary": report.get_status_counts(),
            "targets": [
                {
                    "target_key": target.target_key,
                    "status": target.status.value,
                    "reason": target.reason,
                    "total_size": target.total_size,
                    "groups": [
                        {
                            "target_key": group.target_key,
                            "upload_id": group.upload_id,
                            "committed": group.committed,
                            "total_size": group.total_size,
                            "source_keys": group.source_keys,
                        }
                        for group in target.groups
                    ],
                    "unplaceable_keys": target.unplaceable_keys,
                    "deleted_keys": target.deleted_keys,
                    "delete_failures": [
                        {"key": key, "message": message} for key, message in target.delete_failures
                    ],
                    "abort_failures": target.abort_failures,
                }
                for target in report.targets
            ],
        }

    @staticmethod
    def _json_serializer(value):
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc).isoformat()
            return value.isoformat()
        raise TypeError(f"Object of type {type(value)!r} is not JSON serialisable")
