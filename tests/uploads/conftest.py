import pytest

from infrastructure.external.storage import LocalStorageConfig
from upload_fakes import BatchRecorder, FakeUploader


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def batch_recorder():
    return BatchRecorder()


@pytest.fixture
def config_resolver(tmp_path):
    def resolve(provider):
        return LocalStorageConfig(base_path=str(tmp_path))

    return resolve
