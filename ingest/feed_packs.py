from __future__ import annotations

from pathlib import Path

import yaml

from ingest.sources import AlertSource, resolve_source_kind


def load_feed_pack_sources(feeds_dir: Path) -> dict[str, list[AlertSource]]:
    packs: dict[str, list[AlertSource]] = {}
    if not feeds_dir.exists():
        return packs

    for path in sorted(feeds_dir.glob("*.yaml")):
        pack_id = path.stem
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if raw is None:
            packs[pack_id] = []
            continue
        if not isinstance(raw, list):
            raise ValueError(f"invalid feed pack: {path}")

        entries: list[AlertSource] = []
        for entry in raw:
            if not isinstance(entry, dict):
                raise ValueError(f"invalid feed entry in: {path}")
            configuration = entry.get("configuration") or {}
            if not isinstance(configuration, dict):
                raise ValueError(f"invalid configuration for {entry.get('id')} in: {path}")
            entries.append(
                AlertSource(
                    id=str(entry["id"]),
                    name=str(entry["name"]),
                    kind=resolve_source_kind(str(entry.get("type") or "generic")),
                    api_endpoint=str(entry["url"]),
                    is_active=bool(entry.get("enabled", True)),
                    polling_interval=int(entry.get("poll_seconds") or 300),
                    configuration=configuration,
                )
            )

        packs[pack_id] = entries

    return packs
