"""
emu_core.py

Core emulator / VM / container detection library (importable)
Targets Python 3.9+

Every probe looks at one category of system information and hands back a
ProbeOutcome. The Detector runs the probes in registration order, keeps
each one isolated from the others and folds everything into a single
DetectionReport.
"""

from __future__ import annotations
import json
import logging
import os
import sys
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple


logger = logging.getLogger(__name__)




# ---------------------------
# Signatures & Config
# ---------------------------

DEV_MODE_ENV_VAR = "NODE_ENV"
DEV_MODE_VALUE = "development"

CONTAINER_ENV_VARS: Tuple[str, ...] = ("DOCKER_CONTAINER", "CONTAINER")

IDENTITY_INDICATORS: List[str] = [
    "vmware", "virtualbox", "qemu", "kvm", "hyper-v", "parallels",
    "xen", "bhyve", "bochs", "acrn", "oracle", "azure",
]

CHASSIS_INDICATORS: List[str] = ["virtual"]

CPU_INDICATORS: List[str] = ["virtual", "vmware", "qemu"]

BIOS_INDICATORS: List[str] = ["virtual", "vmware", "qemu", "virtualbox", "xen", "parallels"]

UUID_INDICATORS: List[str] = ["vmware", "virtual", "vbox"]

CGROUP_INDICATORS: List[str] = ["docker", "lxc"]

CGROUP_PATH = "/proc/1/cgroup"

OS_NAMES: Dict[str, str] = {
    "win32": "Windows",
    "darwin": "macOS",
}


def normalize_mac_prefix(mac: str) -> str:
    """Canonical 3-octet prefix: uppercase, colon separated, 8 characters."""
    return mac.strip().upper().replace("-", ":")[:8]


VIRTUAL_MAC_PREFIXES: List[str] = [
    normalize_mac_prefix(p)
    for p in ("00:05:69", "00:0C:29", "00:1C:14", "00:50:56", "00:1C:42", "00:03:FF")
]




# ---------------------------
# Data model
# ---------------------------

@dataclass(frozen=True)
class RuntimeContext:
    is_packaged: bool
    env: Mapping[str, str] = field(default_factory=dict)
    platform: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @classmethod
    def from_process(cls, is_packaged: Optional[bool] = None) -> "RuntimeContext":
        """
        Snapshot of the running interpreter. Unless the caller says otherwise,
        only frozen bundles count as packaged.
        """
        if is_packaged is None:
            is_packaged = bool(getattr(sys, "frozen", False))
        return cls(
            is_packaged=is_packaged,
            env=dict(os.environ),
            platform=sys.platform,
        )


@dataclass(frozen=True)
class Evidence:
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class ProbeOutcome:
    positive_evidences: Tuple[Evidence, ...] = ()
    error_evidences: Tuple[Evidence, ...] = ()

    @property
    def positive(self) -> bool:
        return bool(self.positive_evidences)


@dataclass(frozen=True)
class SystemIdentity:
    manufacturer: Optional[str] = None
    model: Optional[str] = None


@dataclass(frozen=True)
class NetworkInterface:
    name: str
    mac: Optional[str] = None


@dataclass(frozen=True)
class DetectionReport:
    is_emulator: bool
    evidences: Tuple[Evidence, ...]
    os: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_emulator": self.is_emulator,
            "evidences": [e.text for e in self.evidences],
            "os": self.os,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)




# ---------------------------
# System information interface
# ---------------------------

class SystemInfoError(Exception):
    """A system information query could not be answered."""


class SystemInfoProvider(ABC):
    """
    Read-only hardware / OS queries consumed by the probes.

    Every query may raise (SystemInfoError or anything else); probes turn
    that into error evidence. read_init_cgroup is the exception: returning
    None means "not available here" and is never treated as a failure.
    """

    @abstractmethod
    def get_system_identity(self) -> SystemIdentity:
        ...

    @abstractmethod
    def get_chassis_type(self) -> Optional[str]:
        ...

    @abstractmethod
    def get_cpu_brand(self) -> Optional[str]:
        ...

    @abstractmethod
    def get_network_interfaces(self) -> Sequence[NetworkInterface]:
        ...

    @abstractmethod
    def get_bios_vendor(self) -> Optional[str]:
        ...

    @abstractmethod
    def get_os_uuid(self) -> Optional[str]:
        ...

    def read_init_cgroup(self) -> Optional[str]:
        return None




# -----------------
# Probes
# -----------------
# > Each probe is a plain function of (context, provider). No shared state.

Probe = Callable[[RuntimeContext, SystemInfoProvider], ProbeOutcome]


def _found(texts: List[str]) -> ProbeOutcome:
    return ProbeOutcome(positive_evidences=tuple(Evidence(t) for t in texts))


def _query_failed(category: str, exc: BaseException) -> ProbeOutcome:
    logger.debug("%s query failed: %r", category, exc)
    return ProbeOutcome(
        error_evidences=(Evidence(f"Error retrieving {category} information: {exc}"),)
    )


def probe_execution_mode(ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    hits = []
    if not ctx.is_packaged:
        hits.append("is_packaged=False (development mode)")
    if ctx.env.get(DEV_MODE_ENV_VAR) == DEV_MODE_VALUE:
        hits.append(f"{DEV_MODE_ENV_VAR}={DEV_MODE_VALUE}")
    return _found(hits)


def probe_system_identity(ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    try:
        system = provider.get_system_identity()
    except Exception as e:
        return _query_failed("system", e)

    fields = (
        ("manufacturer", (system.manufacturer or "").lower()),
        ("model", (system.model or "").lower()),
    )
    hits = []
    # One evidence per matching field, so a token in both fields is recorded twice.
    for indicator in IDENTITY_INDICATORS:
        for name, value in fields:
            if indicator in value:
                hits.append(
                    f'Detected virtualization indicator: "{indicator}" in {name} '
                    f'(manufacturer: "{system.manufacturer}", model: "{system.model}")'
                )
    return _found(hits)


def probe_chassis(ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    try:
        chassis = provider.get_chassis_type()
    except Exception as e:
        return _query_failed("chassis", e)

    if chassis and any(ind in chassis.lower() for ind in CHASSIS_INDICATORS):
        return _found([f'Chassis type indicates virtualization: "{chassis}"'])
    return ProbeOutcome()


def probe_cpu(ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    try:
        brand = provider.get_cpu_brand()
    except Exception as e:
        return _query_failed("CPU", e)

    if brand and any(ind in brand.lower() for ind in CPU_INDICATORS):
        return _found([f'CPU brand indicates virtualization: "{brand}"'])
    return ProbeOutcome()


def probe_network(ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    try:
        interfaces = provider.get_network_interfaces()
    except Exception as e:
        return _query_failed("network interface", e)

    hits = []
    for iface in interfaces:
        if not iface.mac:
            continue
        # Exact prefix comparison; a substring test would hit unrelated ranges.
        prefix = normalize_mac_prefix(iface.mac)
        if prefix in VIRTUAL_MAC_PREFIXES:
            hits.append(
                f"Network interface {iface.name} has MAC address {iface.mac} "
                f"with virtualization prefix ({prefix})"
            )
    return _found(hits)


def probe_bios(ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    try:
        vendor = provider.get_bios_vendor()
    except Exception as e:
        return _query_failed("BIOS", e)

    lowered = (vendor or "").lower()
    return _found([
        f'BIOS vendor indicates virtualization: "{vendor}" contains "{ind}"'
        for ind in BIOS_INDICATORS
        if ind in lowered
    ])


def probe_uuid(ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    try:
        uuid = provider.get_os_uuid()
    except Exception as e:
        return _query_failed("UUID", e)

    if uuid and any(ind in uuid.lower() for ind in UUID_INDICATORS):
        return _found([f'UUID indicates virtualization: "{uuid}"'])
    return ProbeOutcome()


def probe_container(ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    if not ctx.platform.startswith("linux"):
        return ProbeOutcome()
    try:
        cgroup = provider.read_init_cgroup()
    except Exception as e:
        # Unreadable cgroup file is normal outside containers.
        logger.debug("cgroup unavailable: %r", e)
        return ProbeOutcome()

    if cgroup and any(ind in cgroup for ind in CGROUP_INDICATORS):
        return _found([f"Detected container environment via {CGROUP_PATH}"])
    return ProbeOutcome()


def probe_container_env(ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    for name in CONTAINER_ENV_VARS:
        if ctx.env.get(name):
            return _found([f"Environment variable indicates container/emulator environment ({name})"])
    return ProbeOutcome()


PROBES: List[Tuple[str, Probe]] = [
    ("execution mode", probe_execution_mode),
    ("system identity", probe_system_identity),
    ("chassis", probe_chassis),
    ("CPU", probe_cpu),
    ("network", probe_network),
    ("BIOS", probe_bios),
    ("UUID", probe_uuid),
    ("container", probe_container),
    ("container environment", probe_container_env),
]




# ---------------------------
# Helpers
# ---------------------------

def resolve_os_name(platform_id: str) -> str:
    return OS_NAMES.get(platform_id, platform_id)


def _run_isolated(name: str, probe: Probe, ctx: RuntimeContext, provider: SystemInfoProvider) -> ProbeOutcome:
    t0 = time.perf_counter()
    try:
        outcome = probe(ctx, provider)
        if not isinstance(outcome, ProbeOutcome):
            raise TypeError(f"expected ProbeOutcome, got {type(outcome).__name__}")
    except Exception as e:
        logger.debug("probe %s crashed", name, exc_info=True)
        outcome = ProbeOutcome(error_evidences=(Evidence(f"Error running {name} probe: {e}"),))
    logger.debug(
        "probe %s: %d positive, %d error (%.3fs)",
        name, len(outcome.positive_evidences), len(outcome.error_evidences),
        time.perf_counter() - t0,
    )
    return outcome




# ---------------------------
# Detector
# ---------------------------

class Detector:
    def __init__(
        self,
        probes: Optional[Sequence[Tuple[str, Probe]]] = None,
        parallel: bool = False,
        timeout: Optional[float] = None,
    ) -> None:
        self.probes: List[Tuple[str, Probe]] = list(PROBES if probes is None else probes)
        self.parallel = parallel
        self.timeout = timeout

    def run_probes(self, ctx: RuntimeContext, provider: SystemInfoProvider) -> List[ProbeOutcome]:
        """
        Outcomes in registration order, whatever the scheduling.

        A probe that misses the deadline is reported as timed out, but its
        worker thread is not killed; the interpreter still joins it on exit.
        """
        if not self.parallel and self.timeout is None:
            return [_run_isolated(name, probe, ctx, provider) for name, probe in self.probes]

        executor = ThreadPoolExecutor(
            max_workers=max(1, len(self.probes)), thread_name_prefix="emu-probe"
        )
        try:
            futures = [
                executor.submit(_run_isolated, name, probe, ctx, provider)
                for name, probe in self.probes
            ]
            done, pending = wait(futures, timeout=self.timeout)
            if pending:
                logger.warning("%d probe(s) missed the %.1fs deadline", len(pending), self.timeout)

            outcomes: List[ProbeOutcome] = []
            for (name, _), fut in zip(self.probes, futures):
                if fut in done:
                    outcomes.append(fut.result())
                else:
                    outcomes.append(ProbeOutcome(
                        error_evidences=(Evidence(f"Timed out waiting for {name} probe"),)
                    ))
            return outcomes
        finally:
            # Stragglers keep running in the background; nobody waits for them.
            executor.shutdown(wait=False, cancel_futures=True)

    def detect(self, ctx: RuntimeContext, provider: SystemInfoProvider) -> DetectionReport:
        is_emulator = False
        evidences: List[Evidence] = []
        for outcome in self.run_probes(ctx, provider):
            evidences.extend(outcome.positive_evidences)
            evidences.extend(outcome.error_evidences)
            if outcome.positive:
                is_emulator = True

        report = DetectionReport(
            is_emulator=is_emulator,
            evidences=tuple(evidences),
            os=resolve_os_name(ctx.platform),
        )
        logger.info("emulator=%s (%d evidence entries)", report.is_emulator, len(report.evidences))
        return report


def detect(
    ctx: Optional[RuntimeContext] = None,
    provider: Optional[SystemInfoProvider] = None,
    **kwargs,
) -> DetectionReport:
    """
    One-shot detection. Without arguments the current process and host
    are inspected.
    """
    if ctx is None:
        ctx = RuntimeContext.from_process()
    if provider is None:
        from emu_sysinfo import HostInfoProvider
        provider = HostInfoProvider(ctx.platform)
    return Detector(**kwargs).detect(ctx, provider)

# End of emu_core.py
