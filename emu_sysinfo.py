"""
emu_sysinfo.py

Concrete SystemInfoProvider for the host the detector runs on.
Linux, Windows and macOS are supported; anything else answers every
query with SystemInfoError.

__Sources__ = /sys/class/dmi/id, /proc, dmidecode, PowerShell CIM,
sysctl / ioreg, the Windows registry and psutil.
"""

from __future__ import annotations
import logging
import os
import re
import shutil
import subprocess
import sys
from typing import Dict, List, Optional

import psutil

from emu_core import CGROUP_PATH, NetworkInterface, SystemIdentity, SystemInfoError, SystemInfoProvider

# For Windows-only registry stuff
if sys.platform == "win32":
    import winreg
else:
    winreg = None


logger = logging.getLogger(__name__)


DMI_BASE = "/sys/class/dmi/id"

MACHINE_ID_PATHS = ("/etc/machine-id", "/var/lib/dbus/machine-id")

# SMBIOS chassis type codes (DMTF DSP0134, 7.4.1), index == code.
CHASSIS_TYPES: List[str] = [
    "", "Other", "Unknown", "Desktop", "Low Profile Desktop", "Pizza Box",
    "Mini Tower", "Tower", "Portable", "Laptop", "Notebook", "Hand Held",
    "Docking Station", "All in One", "Sub Notebook", "Space-Saving", "Lunch Box",
    "Main System Chassis", "Expansion Chassis", "SubChassis", "Bus Expansion Chassis",
    "Peripheral Chassis", "RAID Chassis", "Rack Mount Chassis", "Sealed-Case PC",
    "Multi-System Chassis", "Compact PCI", "Advanced TCA", "Blade", "Blade Enclosure",
    "Tablet", "Convertible", "Detachable", "IoT Gateway", "Embedded PC", "Mini PC",
    "Stick PC",
]




# ---------------------------
# Utilities & Help
# ---------------------------

def run(cmd: List[str], *, timeout: float = 10) -> str:
    if not shutil.which(cmd[0]):
        raise SystemInfoError(f"{cmd[0]} not available")
    try:
        return subprocess.check_output(cmd, stderr=subprocess.DEVNULL, text=True, timeout=timeout) or ""
    except (subprocess.SubprocessError, OSError) as e:
        raise SystemInfoError(f"{cmd[0]} failed: {e}") from e


def powershell(command: str) -> str:
    return run(["powershell", "-NoProfile", "-NonInteractive", "-Command", command]).strip()


def _safe_read_text(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            return f.read()
    except OSError:
        return None


def _dmi_field(name: str, dmidecode_key: Optional[str] = None) -> Optional[str]:
    txt = _safe_read_text(os.path.join(DMI_BASE, name))
    if txt is not None:
        return txt.strip() or None
    if dmidecode_key:
        return run(["dmidecode", "-s", dmidecode_key]).strip() or None
    raise SystemInfoError(f"{os.path.join(DMI_BASE, name)} is not readable")


def _key_values(out: str) -> Dict[str, str]:
    """Parse `Key=Value` lines; blank values stay empty strings."""
    fields: Dict[str, str] = {}
    for line in out.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            fields[key.strip()] = value.strip()
    return fields


def chassis_name(code: str) -> str:
    """Map an SMBIOS chassis code ("10", "3") to its name; unknown codes pass through."""
    try:
        idx = int(code.strip())
    except ValueError:
        return code.strip()
    if 0 < idx < len(CHASSIS_TYPES):
        return CHASSIS_TYPES[idx]
    return code.strip()




# ---------------------------
# Provider
# ---------------------------

class HostInfoProvider(SystemInfoProvider):
    def __init__(self, platform: Optional[str] = None) -> None:
        self.platform = platform or sys.platform

    @property
    def _linux(self) -> bool:
        return self.platform.startswith("linux")

    @property
    def _windows(self) -> bool:
        return self.platform == "win32"

    @property
    def _macos(self) -> bool:
        return self.platform == "darwin"

    def _unsupported(self) -> SystemInfoError:
        return SystemInfoError(f"not supported on platform: {self.platform}")

    def get_system_identity(self) -> SystemIdentity:
        if self._linux:
            values = {}
            failures = []
            for key, name, dmidecode_key in (
                ("manufacturer", "sys_vendor", "system-manufacturer"),
                ("model", "product_name", "system-product-name"),
            ):
                try:
                    values[key] = _dmi_field(name, dmidecode_key)
                except SystemInfoError as e:
                    logger.debug("%s unavailable: %s", name, e)
                    failures.append(str(e))
            # A partial answer still carries the readable field.
            if not values:
                raise SystemInfoError("; ".join(failures))
            return SystemIdentity(**values)
        if self._windows:
            out = powershell(
                "$c=Get-CimInstance -ClassName Win32_ComputerSystem; "
                "\"Manufacturer=$($c.Manufacturer)\"; \"Model=$($c.Model)\""
            )
            fields = _key_values(out)
            return SystemIdentity(
                manufacturer=fields.get("Manufacturer") or None,
                model=fields.get("Model") or None,
            )
        if self._macos:
            model = run(["sysctl", "-n", "hw.model"]).strip()
            return SystemIdentity(manufacturer="Apple Inc.", model=model or None)
        raise self._unsupported()

    def get_chassis_type(self) -> Optional[str]:
        if self._linux:
            code = _dmi_field("chassis_type")
            return chassis_name(code) if code else None
        if self._windows:
            out = powershell("(Get-CimInstance -ClassName Win32_SystemEnclosure).ChassisTypes")
            codes = [l.strip() for l in out.splitlines() if l.strip()]
            return chassis_name(codes[0]) if codes else None
        if self._macos:
            # Apple hardware does not expose an SMBIOS chassis type.
            return None
        raise self._unsupported()

    def get_cpu_brand(self) -> Optional[str]:
        if self._linux:
            txt = _safe_read_text("/proc/cpuinfo")
            if txt is None:
                raise SystemInfoError("/proc/cpuinfo is not readable")
            m = re.search(r"^model name\s*:\s*(.+)$", txt, re.M)
            return m.group(1).strip() if m else None
        if self._windows:
            out = powershell("(Get-CimInstance -ClassName Win32_Processor).Name")
            lines = [l.strip() for l in out.splitlines() if l.strip()]
            return lines[0] if lines else None
        if self._macos:
            return run(["sysctl", "-n", "machdep.cpu.brand_string"]).strip() or None
        raise self._unsupported()

    def get_network_interfaces(self) -> List[NetworkInterface]:
        interfaces: List[NetworkInterface] = []
        for nic, addrs in psutil.net_if_addrs().items():
            mac = None
            for a in addrs:
                if a.family == psutil.AF_LINK and a.address:
                    mac = a.address.strip()
                    break
            interfaces.append(NetworkInterface(name=nic, mac=mac))
        return interfaces

    def get_bios_vendor(self) -> Optional[str]:
        if self._linux:
            return _dmi_field("bios_vendor", "bios-vendor")
        if self._windows:
            return powershell("(Get-CimInstance -ClassName Win32_BIOS).Manufacturer") or None
        if self._macos:
            return "Apple Inc."
        raise self._unsupported()

    def get_os_uuid(self) -> Optional[str]:
        if self._linux:
            for path in MACHINE_ID_PATHS:
                txt = _safe_read_text(path)
                if txt and txt.strip():
                    return txt.strip()
            raise SystemInfoError("no machine-id found")
        if self._windows:
            try:
                with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, r"SOFTWARE\Microsoft\Cryptography") as key:
                    value, _ = winreg.QueryValueEx(key, "MachineGuid")
            except OSError as e:
                raise SystemInfoError(f"MachineGuid unavailable: {e}") from e
            return str(value).strip() or None
        if self._macos:
            out = run(["ioreg", "-rd1", "-c", "IOPlatformExpertDevice"])
            m = re.search(r'"IOPlatformUUID"\s*=\s*"([^"]+)"', out)
            return m.group(1) if m else None
        raise self._unsupported()

    def read_init_cgroup(self) -> Optional[str]:
        if not self._linux:
            return None
        txt = _safe_read_text(CGROUP_PATH)
        if txt is None:
            logger.debug("%s not readable", CGROUP_PATH)
        return txt

# End of emu_sysinfo.py
