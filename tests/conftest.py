"""
Shared fixtures for the detection tests.

FakeProvider answers every query from canned values; any value that is an
exception instance is raised instead of returned, which is how the tests
simulate unavailable system information.
"""

from typing import Any, Dict

import pytest

from emu_core import NetworkInterface, RuntimeContext, SystemIdentity, SystemInfoProvider


class FakeProvider(SystemInfoProvider):
    DEFAULTS: Dict[str, Any] = {
        "identity": SystemIdentity(manufacturer="Dell Inc.", model="XPS 13"),
        "chassis": "Notebook",
        "cpu": "Intel(R) Core(TM) i7",
        "interfaces": [NetworkInterface(name="eth0", mac="3C:22:FB:12:34:56")],
        "bios": "Dell Inc.",
        "uuid": "4c4c4544-0042-3510-8052-b4c04f4e3132",
        "cgroup": "0::/init.scope\n",
    }

    def __init__(self, **overrides: Any) -> None:
        self.values = dict(self.DEFAULTS, **overrides)
        self.calls = []

    def _answer(self, key: str) -> Any:
        self.calls.append(key)
        value = self.values[key]
        if isinstance(value, BaseException):
            raise value
        return value

    def get_system_identity(self):
        return self._answer("identity")

    def get_chassis_type(self):
        return self._answer("chassis")

    def get_cpu_brand(self):
        return self._answer("cpu")

    def get_network_interfaces(self):
        return self._answer("interfaces")

    def get_bios_vendor(self):
        return self._answer("bios")

    def get_os_uuid(self):
        return self._answer("uuid")

    def read_init_cgroup(self):
        return self._answer("cgroup")


@pytest.fixture
def clean_ctx() -> RuntimeContext:
    return RuntimeContext(is_packaged=True, env={}, platform="linux")


@pytest.fixture
def make_provider():
    return FakeProvider
