from __future__ import annotations

import unittest
import uuid
from pathlib import Path
from tempfile import TemporaryDirectory

from db.repositories.errors import ModelDatasetNotFoundError, ModelStoreError
from db.repositories.model_store import LocalModelStore
from db.repositories.types import DeleteResult


class TestLocalModelStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.store = LocalModelStore(self.root)
        self.model_id = uuid.uuid4()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_dataset_round_trip(self) -> None:
        location = self.store.put_input_dataset(self.model_id, b"u1,i1\n")

        self.assertEqual(location, f"datasets/{self.model_id}/usage.csv")
        with self.store.get_input_dataset(self.model_id) as stream:
            self.assertEqual(stream.read(), b"u1,i1\n")
        self.assertEqual(self.store.input_root_path(self.model_id), f"datasets/{self.model_id}")

    def test_missing_dataset_raises(self) -> None:
        with self.assertRaises(ModelDatasetNotFoundError):
            self.store.get_input_dataset(self.model_id)
        self.assertTrue(issubclass(ModelDatasetNotFoundError, ModelStoreError))

    def test_put_model_artifact_replaces_previous(self) -> None:
        self.store.put_model_artifact(self.model_id, b"old")
        location = self.store.put_model_artifact(self.model_id, b"new")

        self.assertEqual(location, f"models/{self.model_id}/model.bin")
        self.assertEqual((self.root / location).read_bytes(), b"new")
        self.assertEqual(list((self.root / "models" / str(self.model_id)).iterdir()), [self.root / location])

    def test_delete_model_removes_dataset_and_artifact(self) -> None:
        self.store.put_input_dataset(self.model_id, b"u1,i1\n")
        self.store.put_model_artifact(self.model_id, b"artifact")

        self.assertEqual(self.store.delete_model(self.model_id), DeleteResult.DELETED)
        self.assertFalse((self.root / "models" / str(self.model_id)).exists())
        self.assertFalse((self.root / "datasets" / str(self.model_id)).exists())
        self.assertEqual(self.store.delete_model(self.model_id), DeleteResult.NOT_FOUND)

    def test_delete_other_model_leaves_files(self) -> None:
        self.store.put_model_artifact(self.model_id, b"artifact")

        self.assertEqual(self.store.delete_model(uuid.uuid4()), DeleteResult.NOT_FOUND)
        self.assertTrue((self.root / "models" / str(self.model_id) / "model.bin").exists())


if __name__ == "__main__":
    unittest.main()
