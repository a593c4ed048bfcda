#!/usr/bin/env python3
"""
Portainer API Integration Module
Runs commands inside stack containers through the Portainer REST API
"""

import struct
import time
from typing import Dict, List, Optional, Sequence

import requests

from console import print_error, print_info, print_success
from container_runtime import ExecResult

# Portainer environment types backed by a Docker engine
DOCKER_ENDPOINT_TYPES = (1, 2, 4)  # 1 = local, 2 = agent, 4 = swarm

# Docker raw-stream frame types
STREAM_STDOUT = 1
STREAM_STDERR = 2


def demultiplex_stream(payload: bytes) -> Dict[int, str]:
    """
    Split a Docker multiplexed exec stream into stdout and stderr

    Each frame is an 8-byte header (stream type, 3 padding bytes, big-endian
    uint32 length) followed by the frame data.

    Args:
        payload: Raw response body of an exec start request

    Returns:
        Mapping of stream type to decoded text
    """
    streams = {STREAM_STDOUT: bytearray(), STREAM_STDERR: bytearray()}
    offset = 0
    while offset + 8 <= len(payload):
        stream_type, size = struct.unpack('>BxxxL', payload[offset:offset + 8])
        offset += 8
        chunk = payload[offset:offset + size]
        offset += size
        streams.setdefault(stream_type, bytearray()).extend(chunk)

    return {k: bytes(v).decode('utf-8', errors='replace') for k, v in streams.items()}


class PortainerAPI:
    """Portainer API client used as a container runtime handle"""

    def __init__(self, base_url: str = "http://localhost:9000", endpoint_id: Optional[int] = None,
                 exec_timeout: int = 60):
        """
        Initialize Portainer API client

        Args:
            base_url: Portainer API base URL (default: http://localhost:9000)
            endpoint_id: Portainer environment ID; discovered when omitted
            exec_timeout: HTTP timeout for a single exec round-trip in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.api_url = f"{self.base_url}/api"
        self.jwt_token: Optional[str] = None
        self.endpoint_id: Optional[int] = endpoint_id
        self.exec_timeout = exec_timeout

    def wait_for_portainer(self, timeout: int = 120, interval: int = 2) -> bool:
        """
        Wait for Portainer to be ready

        Args:
            timeout: Maximum wait time in seconds
            interval: Check interval in seconds

        Returns:
            True if Portainer is ready, False otherwise
        """
        print_info("Waiting for Portainer to be ready...")
        start_time = time.monotonic()

        while time.monotonic() - start_time < timeout:
            try:
                response = requests.get(f"{self.api_url}/status", timeout=5)
                if response.status_code == 200:
                    print_success("Portainer is ready")
                    return True
            except requests.exceptions.RequestException:
                pass

            time.sleep(interval)

        print_error(f"Portainer did not become ready in {timeout}s")
        return False

    def authenticate(self, username: str, password: str) -> bool:
        """
        Authenticate and obtain JWT token

        Args:
            username: Admin username
            password: Admin password

        Returns:
            True if authentication successful, False otherwise
        """
        try:
            response = requests.post(
                f"{self.api_url}/auth",
                json={"username": username, "password": password},
                timeout=10
            )

            if response.status_code == 200:
                self.jwt_token = response.json().get("jwt")
                if self.jwt_token:
                    print_success("Authenticated with Portainer")
                    return True
                print_error("JWT token missing from Portainer auth response")
                return False

            print_error(f"Portainer authentication failed: {response.status_code} - {response.text}")
            return False

        except requests.exceptions.RequestException as e:
            print_error(f"Connection error during Portainer authentication: {e}")
            return False

    def _get_headers(self) -> Dict[str, str]:
        """Get headers with JWT token for API requests"""
        if not self.jwt_token:
            raise ValueError("JWT token not available. Call authenticate() first.")

        return {
            "Authorization": f"Bearer {self.jwt_token}",
            "Content-Type": "application/json"
        }

    def get_endpoint_id(self) -> Optional[int]:
        """
        Get the Docker environment ID, discovering it on first use

        Returns:
            Endpoint ID or None if not found
        """
        if self.endpoint_id is not None:
            return self.endpoint_id

        try:
            response = requests.get(
                f"{self.api_url}/endpoints",
                headers=self._get_headers(),
                timeout=10
            )

            if response.status_code != 200:
                print_error(f"Failed to list Portainer endpoints: {response.status_code}")
                return None

            for endpoint in response.json():
                if endpoint.get("Type") in DOCKER_ENDPOINT_TYPES:
                    self.endpoint_id = endpoint.get("Id")
                    print_info(f"Using Portainer endpoint {self.endpoint_id} ({endpoint.get('Name', '')})")
                    return self.endpoint_id

            print_error("No Docker endpoint found in Portainer")
            return None

        except requests.exceptions.RequestException as e:
            print_error(f"Connection error while listing Portainer endpoints: {e}")
            return None

    def exec(self, container: str, command: Sequence[str]) -> ExecResult:
        """
        Run a command inside a container via the Docker Engine API proxy

        Transport and API errors are reported as a failed ExecResult, never raised.

        Args:
            container: Container name or ID
            command: Command and arguments

        Returns:
            ExecResult with the exit code and demultiplexed output
        """
        if not self.jwt_token:
            return ExecResult(1, "", "Not authenticated with Portainer")

        endpoint_id = self.get_endpoint_id()
        if endpoint_id is None:
            return ExecResult(1, "", "Portainer endpoint not available")

        docker_url = f"{self.api_url}/endpoints/{endpoint_id}/docker"
        cmd: List[str] = list(command)

        try:
            response = requests.post(
                f"{docker_url}/containers/{container}/exec",
                headers=self._get_headers(),
                json={"AttachStdout": True, "AttachStderr": True, "Tty": False, "Cmd": cmd},
                timeout=10
            )
            if response.status_code != 201:
                return ExecResult(1, "", f"Exec create failed: {response.status_code} - {response.text}")
            exec_id = response.json().get("Id")
            if not exec_id:
                return ExecResult(1, "", "Exec create response missing Id")

            response = requests.post(
                f"{docker_url}/exec/{exec_id}/start",
                headers=self._get_headers(),
                json={"Detach": False, "Tty": False},
                timeout=self.exec_timeout
            )
            if response.status_code != 200:
                return ExecResult(1, "", f"Exec start failed: {response.status_code} - {response.text}")
            streams = demultiplex_stream(response.content)

            response = requests.get(
                f"{docker_url}/exec/{exec_id}/json",
                headers=self._get_headers(),
                timeout=10
            )
            if response.status_code != 200:
                return ExecResult(1, streams[STREAM_STDOUT],
                                  f"Exec inspect failed: {response.status_code} - {response.text}")
            exit_code = response.json().get("ExitCode")

        except requests.exceptions.RequestException as e:
            return ExecResult(1, "", f"Connection error during exec: {e}")

        if exit_code is None:
            return ExecResult(1, streams[STREAM_STDOUT], "Exec still running or exit code unavailable")
        return ExecResult(int(exit_code), streams[STREAM_STDOUT], streams[STREAM_STDERR])
