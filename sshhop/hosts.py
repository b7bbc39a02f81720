"""SSH config host lookup and alias resolution."""

import getpass
import glob
import logging
import os
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_SSH_CONFIG = "~/.ssh/config"

_WILDCARDS = ("*", "?", "!")


@dataclass(frozen=True)
class HostInfo:
    hostname: str
    port: int = 22
    user: str = ""

    @property
    def address(self):
        target = f"{self.user}@{self.hostname}" if self.user else self.hostname
        return target if self.port == 22 else f"{target}:{self.port}"


def ssh_config_path(config_file=""):
    return os.path.expanduser(config_file or DEFAULT_SSH_CONFIG)


def _include_paths(pattern, base_dir):
    pattern = os.path.expanduser(pattern)
    if not os.path.isabs(pattern):
        pattern = os.path.join(base_dir, pattern)
    return sorted(glob.glob(pattern))


def _parse_config(path, seen):
    """Yield host aliases from one config file, following Include lines."""
    path = os.path.realpath(path)
    if path in seen or not os.path.isfile(path):
        return
    seen.add(path)
    base_dir = os.path.expanduser("~/.ssh")
    try:
        with open(path, "r") as f:
            lines = f.readlines()
    except OSError as e:
        logger.warning("Cannot read SSH config %s: %s", path, e)
        return

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.replace("=", " ", 1).split(None, 1)
        if len(parts) != 2:
            continue
        key, value = parts[0].lower(), parts[1].strip()
        if key == "include":
            for pattern in value.split():
                for inc in _include_paths(pattern, base_dir):
                    yield from _parse_config(inc, seen)
        elif key == "host":
            for alias in value.split():
                alias = alias.strip('"')
                if not any(w in alias for w in _WILDCARDS):
                    yield alias


def list_hosts(config_file=""):
    """Return host aliases declared in the SSH config, in file order."""
    hosts = []
    for alias in _parse_config(ssh_config_path(config_file), set()):
        if alias not in hosts:
            hosts.append(alias)
    return hosts


def host_exists(name, config_file=""):
    return name in list_hosts(config_file)


def resolve(name, config_file=""):
    """Resolve an alias to hostname/port/user with `ssh -G`."""
    info = {"hostname": name, "port": 22, "user": getpass.getuser()}
    cmd = ["ssh"]
    if config_file:
        cmd.extend(["-F", os.path.expanduser(config_file)])
    cmd.extend(["-G", name])
    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, timeout=5,
            stdin=subprocess.DEVNULL,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("ssh -G %s failed: %s", name, e)
        return HostInfo(**info)
    if result.returncode != 0:
        return HostInfo(**info)

    for line in result.stdout.splitlines():
        parts = line.split(" ", 1)
        if len(parts) != 2:
            continue
        key, value = parts[0].lower(), parts[1].strip()
        if key == "hostname":
            info["hostname"] = value
        elif key == "port":
            try:
                info["port"] = int(value)
            except ValueError:
                pass
        elif key == "user":
            info["user"] = value
    return HostInfo(**info)
