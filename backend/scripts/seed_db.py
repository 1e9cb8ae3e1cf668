#!/usr/bin/env python3
"""Pobla `reporting.conversations` con conversaciones sintéticas vía Supabase REST."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from app.core.config import Settings
from app.core.security import mask_secret
from app.repositories.conversations import ReportingRepository, ReportingStoreError
from app.services.seed import build_seed_conversations, seed_conversations


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Genera conversaciones sintéticas y las envía con upsert a la tabla de reportes. "
            "Usa SUPABASE_URL y la llave service role (o anon) del entorno."
        )
    )
    parser.add_argument(
        "--count",
        type=int,
        default=50,
        help="Número de conversaciones a generar (default: 50).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Semilla para obtener siempre los mismos datos.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Filas por request de upsert (default: 100).",
    )
    parser.add_argument(
        "--dotenv",
        help="Ruta al archivo .env a cargar antes de leer variables de entorno.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Imprime las filas como JSON sin escribir en Supabase.",
    )
    return parser.parse_args()


def _load_env(dotenv_path: str | None) -> None:
    if dotenv_path:
        dotenv_file = Path(dotenv_path)
        if dotenv_file.exists():
            load_dotenv(dotenv_file)
        return
    for candidate in (Path(".env"), Path("backend/.env")):
        if candidate.exists():
            load_dotenv(candidate)


async def _seed(config: Settings, count: int, seed: int | None, batch_size: int) -> int:
    conversations = build_seed_conversations(count, seed=seed)
    async with ReportingRepository.connect(config, use_service_role=True) as repository:
        return await seed_conversations(repository, conversations, batch_size=batch_size)


def main() -> int:
    args = parse_args()
    _load_env(args.dotenv)

    if args.dry_run:
        rows = [row.model_dump() for row in build_seed_conversations(args.count, seed=args.seed)]
        print(json.dumps(rows, ensure_ascii=False, indent=2))
        return 0

    config = Settings()
    key = config.supabase_service_role or config.supabase_anon
    print(
        f"[seed_db] Enviando {args.count} conversaciones a {config.supabase_url} "
        f"({config.reporting_schema}.{config.conversations_table}, key={mask_secret(key)})"
    )
    try:
        written = asyncio.run(_seed(config, args.count, args.seed, args.batch_size))
    except (ReportingStoreError, ValueError) as exc:  # pragma: no cover - CLI
        print(f"[seed_db] ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"[seed_db] {written} conversaciones escritas correctamente.")
    return 0


if __name__ == "__main__":  # pragma: no cover - script manual
    sys.exit(main())
