"""
Submit model train / delete requests from CLI.
"""

from __future__ import annotations

import argparse
import json
import uuid
from pathlib import Path

from db.repositories.model_queue import SqlModelQueue
from db.repositories.model_registry import ModelRegistry
from db.repositories.model_store import LocalModelStore
from modeljobs.config import get_storage_settings, get_worker_settings
from modeljobs.services.submission_service import ModelSubmissionService


def main() -> int:
    parser = argparse.ArgumentParser(description="Submit model jobs or inspect models.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    train = subparsers.add_parser("train", help="Upload a usage events file and queue training.")
    train.add_argument("dataset", type=Path, help="Path to a usage events CSV file.")
    train.add_argument("--description", default=None, help="Optional model description.")
    train.add_argument(
        "--max-parsing-errors",
        dest="max_parsing_errors",
        type=int,
        default=None,
        help="Override the parsing error budget for this model.",
    )

    delete = subparsers.add_parser("delete", help="Queue deletion of a model.")
    delete.add_argument("model_id", type=uuid.UUID)

    show = subparsers.add_parser("show", help="Print a model's registry entry.")
    show.add_argument("model_id", type=uuid.UUID)
    show.add_argument("--details", action="store_true", help="Include internal error details.")

    default = subparsers.add_parser("default", help="Show, set or clear the default model.")
    default_action = default.add_mutually_exclusive_group()
    default_action.add_argument("--set", dest="set_model_id", type=uuid.UUID, default=None)
    default_action.add_argument("--clear", action="store_true")

    args = parser.parse_args()

    settings = get_worker_settings()
    service = ModelSubmissionService(
        registry=ModelRegistry(),
        model_store=LocalModelStore(get_storage_settings().root_dir),
        train_queue=SqlModelQueue(settings.train_queue_name),
        delete_queue=SqlModelQueue(settings.delete_queue_name),
    )

    if args.command == "train":
        parameters = {}
        if args.max_parsing_errors is not None:
            parameters["max_parsing_errors"] = args.max_parsing_errors
        entry = service.submit_train(
            dataset=args.dataset.read_bytes(),
            description=args.description,
            parameters=parameters,
        )
        payload = {"model_id": str(entry.model_id), "status": entry.status}
    elif args.command == "delete":
        handle = service.submit_delete(args.model_id)
        payload = {"model_id": str(args.model_id), "message_id": str(handle.message_id)}
    elif args.command == "default":
        if args.set_model_id is not None:
            service.set_default_model(args.set_model_id)
        elif args.clear:
            service.clear_default_model()
        default_model = service.get_default_model()
        payload = {"default_model": default_model.model_dump(mode="json") if default_model else None}
    else:
        payload = service.get_model(args.model_id, include_error_details=args.details).model_dump(
            mode="json"
        )

    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
