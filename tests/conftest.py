import pytest

from sfbackup.config import BackupConfig
from tests.fakes import HookRecorder


@pytest.fixture()
def hook():
    return HookRecorder()


@pytest.fixture()
def config(tmp_path, hook):
    return BackupConfig(
        output_dir=str(tmp_path / "out"),
        poll_interval=0,
        before_export_callback=hook,
    )
