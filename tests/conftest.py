"""Shared test fixtures for gptpart tests."""
import os
from uuid import UUID

import pytest

from gptpart.core import actions
from gptpart.core.config import MIB, GptPartConfig, set_config
from gptpart.discovery.devices import DeviceDiscovery

TABLE_ID = UUID('6d1c2a4e-3f0b-4b8e-9d7a-1c2b3d4e5f60')
IMAGE_SIZE = 100 * MIB


@pytest.fixture(autouse=True)
def gptpart_config(tmp_path):
    """Isolated config: lock files under tmp_path, defaults otherwise."""
    config = GptPartConfig(lock_dir=str(tmp_path / "locks"))
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def make_image(tmp_path):
    """Factory for sparse, zero-filled disk images under tmp_path."""
    def _make(name="disk.img", size=IMAGE_SIZE):
        path = tmp_path / name
        with open(path, 'wb') as f:
            os.truncate(f.fileno(), size)
        return path
    return _make


@pytest.fixture
def table_id():
    return TABLE_ID


@pytest.fixture
def image(make_image):
    """100 MiB blank disk image."""
    return make_image()


@pytest.fixture
def device(image):
    """Descriptor for the blank image (512 byte blocks)."""
    return DeviceDiscovery().describe(image)


@pytest.fixture
def gpt_device(device, table_id):
    """Image carrying an empty GPT with a fixed table id."""
    actions.create_table(device, table_id=table_id)
    return device
