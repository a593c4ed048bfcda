"""
Container runtime handles
Run a command inside a named container and report exit code and output
"""

import subprocess
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence


@dataclass(frozen=True)
class ExecResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ContainerRuntime(Protocol):
    def exec(self, container: str, command: Sequence[str]) -> ExecResult:
        ...


class DockerCLI:
    """Runs commands through `docker exec` on the local Docker daemon"""

    def __init__(self, docker: str = "docker", timeout: Optional[float] = None):
        """
        Args:
            docker: Docker binary name or path
            timeout: Per-command timeout in seconds (None waits indefinitely)
        """
        self.docker = docker
        self.timeout = timeout

    def exec(self, container: str, command: Sequence[str]) -> ExecResult:
        cmd = [self.docker, "exec", container, *command]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, encoding="utf-8",
                                    errors="replace", timeout=self.timeout)
        except FileNotFoundError:
            return ExecResult(127, "", f"{self.docker}: command not found")
        except subprocess.TimeoutExpired:
            return ExecResult(124, "", f"Command timed out after {self.timeout}s: {' '.join(cmd)}")

        return ExecResult(result.returncode, result.stdout or "", result.stderr or "")
