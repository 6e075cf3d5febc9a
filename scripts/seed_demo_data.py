#!/usr/bin/env python3
"""Load demo provider credentials, models and prompt drafts into the database."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from prompt_gateway.database import Base, SessionLocal, engine
from prompt_gateway.models import ModelRecord, PromptDraft, ProviderCredential

DEFAULT_SOURCE = Path("docs/demo_data.json")


def _upsert_provider(db: Session, raw: Dict[str, Any]) -> None:
    provider = str(raw["provider"]).strip().lower()
    existing = db.scalars(
        select(ProviderCredential).where(ProviderCredential.provider == provider)
    ).first()
    if existing is None:
        existing = ProviderCredential(provider=provider)
        db.add(existing)
    existing.api_credential = raw.get("api_credential")


def _upsert_model(db: Session, raw: Dict[str, Any]) -> None:
    record = db.get(ModelRecord, raw["id"]) if raw.get("id") else None
    if record is None:
        record = ModelRecord(id=raw.get("id"))
        db.add(record)
    record.name = raw["name"]
    record.description = raw.get("description")
    record.provider = raw.get("provider")
    record.provider_model = raw["provider_model"]
    record.status = raw.get("status", "active")
    record.api_key = raw.get("api_key")
    record.max_tokens = raw.get("max_tokens")


def _upsert_draft(db: Session, raw: Dict[str, Any]) -> None:
    draft = db.get(PromptDraft, raw["id"]) if raw.get("id") else None
    if draft is None:
        draft = PromptDraft(id=raw.get("id"))
        db.add(draft)
    draft.title = raw.get("title", "Untitled")
    draft.prompt_text = raw["prompt_text"]
    draft.model_id = raw.get("model_id")
    draft.user_id = raw.get("user_id")
    draft.variables = raw.get("variables", [])


def seed(source: Path, *, create_schema: bool = False) -> Dict[str, int]:
    with source.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError("Seed file must contain a JSON object")

    if create_schema:
        Base.metadata.create_all(bind=engine)

    providers = payload.get("providers", [])
    models = payload.get("models", [])
    drafts = payload.get("drafts", [])

    with SessionLocal() as db:
        for raw in providers:
            _upsert_provider(db, raw)
        for raw in models:
            _upsert_model(db, raw)
        db.flush()
        for raw in drafts:
            _upsert_draft(db, raw)
        db.commit()

    return {"providers": len(providers), "models": len(models), "drafts": len(drafts)}


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the gateway database with demo data.")
    parser.add_argument("--source", type=Path, default=DEFAULT_SOURCE, help="Path to the JSON seed file.")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables before loading (development databases only).",
    )

    args = parser.parse_args(argv)

    try:
        counts = seed(args.source, create_schema=args.create_schema)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as exc:
        print(f"Invalid JSON in {args.source}: {exc}", file=sys.stderr)
        return 1
    except (KeyError, ValueError) as exc:
        print(f"Invalid seed data: {exc}", file=sys.stderr)
        return 1
    except SQLAlchemyError as exc:
        print(f"Database error while seeding: {exc}", file=sys.stderr)
        return 1

    print("Demo data loaded:")
    print(json.dumps(counts, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
