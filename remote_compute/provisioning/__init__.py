"""Droplet provisioning building blocks: provider API, keys, SSH transport."""

from remote_compute.provisioning.cleanup import CleanupReport
from remote_compute.provisioning.digitalocean import (
    DigitalOceanGateway,
    create_droplet,
    delete_droplet,
    delete_ssh_key,
    get_droplet,
    public_ipv4,
    register_ssh_key,
    wait_for_active,
)
from remote_compute.provisioning.keys import KeyPair, generate_key_pair
from remote_compute.provisioning.ssh import wait_for_ssh
from remote_compute.provisioning.ssh_transport import SshTransport, ssh_base_args
from remote_compute.provisioning.types import ApiResponse, ProvisionedResource

__all__ = [
    "ApiResponse",
    "CleanupReport",
    "DigitalOceanGateway",
    "KeyPair",
    "ProvisionedResource",
    "SshTransport",
    "create_droplet",
    "delete_droplet",
    "delete_ssh_key",
    "generate_key_pair",
    "get_droplet",
    "public_ipv4",
    "register_ssh_key",
    "ssh_base_args",
    "wait_for_active",
    "wait_for_ssh",
]
