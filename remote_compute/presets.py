"""Lookup tables and fixed payloads for DigitalOcean droplets."""

PROVIDER = "digitalocean"
RESOURCE_TYPE = "droplet"

# Named size preset -> DigitalOcean size slug.
SIZE_PRESETS = {
    "small": "s-1vcpu-2gb",
    "medium": "s-2vcpu-4gb",
    "large": "s-4vcpu-8gb",
}

DEFAULT_REGION = "nyc3"
DEFAULT_SIZE = "medium"
DEFAULT_IMAGE = "ubuntu-24-04-x64"

EPHEMERAL_TAG = "remote-compute-ephemeral"
NAME_PREFIX = "remote-compute"

SSH_USERNAME = "root"
WORKSPACE_DIR = "/workspace"
READY_MARKER = "/var/lib/cloud/instance/remote-compute-ready"


def resolve_size_slug(size):
    """Translate a preset name to a provider slug.

    Unknown values are treated as raw provider slugs (e.g. ``s-8vcpu-16gb``).
    """
    return SIZE_PRESETS.get(size, size)


BOOTSTRAP_SCRIPT = f"""#!/bin/bash
set -euo pipefail

export DEBIAN_FRONTEND=noninteractive

# 2GB swap for memory-hungry builds
if [ ! -f /swapfile ]; then
    fallocate -l 2G /swapfile
    chmod 600 /swapfile
    mkswap /swapfile
    swapon /swapfile
    echo '/swapfile none swap sw 0 0' >> /etc/fstab
fi

apt-get update -qq
apt-get install -y -qq curl git jq rsync build-essential ca-certificates gnupg lsb-release

if ! command -v node &>/dev/null; then
    curl -fsSL https://deb.nodesource.com/setup_20.x | bash -
    apt-get install -y -qq nodejs
fi

if ! command -v bun &>/dev/null; then
    curl -fsSL https://bun.sh/install | bash
    echo 'export BUN_INSTALL="/root/.bun"' >> /root/.bashrc
    echo 'export PATH="/root/.bun/bin:$PATH"' >> /root/.bashrc
fi

if ! command -v docker &>/dev/null; then
    curl -fsSL https://get.docker.com | sh
    systemctl enable docker
    systemctl start docker
fi

mkdir -p {WORKSPACE_DIR}
chmod 755 {WORKSPACE_DIR}

touch {READY_MARKER}
echo "remote-compute bootstrap complete at $(date -u +%Y-%m-%dT%H:%M:%SZ)" > /var/log/remote-compute-bootstrap.log
"""
