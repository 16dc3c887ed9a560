"""
Storage for model input datasets and trained model artifacts.
"""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Protocol

from db.repositories.errors import ModelDatasetNotFoundError, ModelStoreError
from db.repositories.types import DeleteResult

logger = logging.getLogger(__name__)

_DATASETS_DIR = "datasets"
_MODELS_DIR = "models"
_DATASET_FILE_NAME = "usage.csv"
_ARTIFACT_FILE_NAME = "model.bin"


class ModelStore(Protocol):
    """
    Durable storage referenced by the registry but owned by the store itself.
    """

    def get_input_dataset(self, model_id: uuid.UUID) -> BinaryIO:
        ...

    def input_root_path(self, model_id: uuid.UUID) -> str:
        ...

    def put_input_dataset(self, model_id: uuid.UUID, content: bytes) -> str:
        ...

    def put_model_artifact(self, model_id: uuid.UUID, artifact: bytes) -> str:
        ...

    def delete_model(self, model_id: uuid.UUID) -> str:
        ...


def _write_atomically(target: Path, content: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_suffix(f"{target.suffix}.tmp")
    try:
        with tmp_path.open("wb") as handle:
            handle.write(content)
        tmp_path.replace(target)
    except OSError as exc:
        raise ModelStoreError(f"Failed to write {target.name} to the model store.") from exc
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


class LocalModelStore:
    """
    Filesystem model store.

    Layout under the root directory:
        datasets/<model_id>/usage.csv
        models/<model_id>/model.bin
    """

    def __init__(self, root_dir: str | Path = "data/models") -> None:
        self._root_dir = Path(root_dir)

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    def get_input_dataset(self, model_id: uuid.UUID) -> BinaryIO:
        path = self._dataset_path(model_id)
        try:
            return path.open("rb")
        except FileNotFoundError as exc:
            raise ModelDatasetNotFoundError(f"No input dataset found for model {model_id}.") from exc
        except OSError as exc:
            raise ModelStoreError(f"Failed to open input dataset of model {model_id}.") from exc

    def input_root_path(self, model_id: uuid.UUID) -> str:
        """Store-relative directory holding the model's input files."""
        return f"{_DATASETS_DIR}/{model_id}"

    def put_input_dataset(self, model_id: uuid.UUID, content: bytes) -> str:
        path = self._dataset_path(model_id)
        _write_atomically(path, content)
        logger.info("Stored input dataset model_id=%s bytes=%d", model_id, len(content))
        return path.relative_to(self._root_dir).as_posix()

    def put_model_artifact(self, model_id: uuid.UUID, artifact: bytes) -> str:
        path = self._artifact_path(model_id)
        _write_atomically(path, artifact)
        logger.info("Stored model artifact model_id=%s bytes=%d", model_id, len(artifact))
        return path.relative_to(self._root_dir).as_posix()

    def delete_model(self, model_id: uuid.UUID) -> str:
        """
        Remove the model's artifact and dataset. Returns DeleteResult.NOT_FOUND
        when neither existed.
        """

        found = False
        for directory in (
            self._root_dir / _MODELS_DIR / str(model_id),
            self._root_dir / _DATASETS_DIR / str(model_id),
        ):
            if not directory.exists():
                continue
            found = True
            try:
                shutil.rmtree(directory)
            except OSError as exc:
                raise ModelStoreError(f"Failed to delete files of model {model_id}.") from exc

        if not found:
            return DeleteResult.NOT_FOUND
        logger.info("Deleted model files model_id=%s", model_id)
        return DeleteResult.DELETED

    def _dataset_path(self, model_id: uuid.UUID) -> Path:
        return self._root_dir / _DATASETS_DIR / str(model_id) / _DATASET_FILE_NAME

    def _artifact_path(self, model_id: uuid.UUID) -> Path:
        return self._root_dir / _MODELS_DIR / str(model_id) / _ARTIFACT_FILE_NAME
