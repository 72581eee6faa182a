"""
checker/health/ssh.py — Remote command probe.

Runs the local ssh client against the target host and checks the remote
command's exit code. The child process is killed if the attempt is
cancelled (e.g. by the per-attempt timeout).
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from checker.health import DETAIL_LIMIT, Probe, ProbeResult

if TYPE_CHECKING:
    from checker.definitions import SshParams
    from config.settings import Settings


def build_command(
    params: SshParams, ssh_binary: str = "ssh", batch_mode: bool = True
) -> list[str]:
    args = [ssh_binary]
    if batch_mode:
        args += ["-o", "BatchMode=yes"]
    args.append(params.hostname)
    if params.username:
        args.append(f"-l{params.username}")
    args.append(params.command)
    return args


def _format_output(stdout: bytes, stderr: bytes) -> str:
    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    return f"Stdout:\n{out}Stderr:\n{err}".strip()


async def run_remote(args: list[str]) -> ProbeResult:
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return ProbeResult.failure(f"Unable to spawn ssh command: {e}")

    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise

    log = _format_output(stdout, stderr)
    if proc.returncode != 0:
        return ProbeResult.failure(
            f"Command returned exit code {proc.returncode}",
            detail=log[-DETAIL_LIMIT:],
        )
    return ProbeResult.success(detail=log)


def make_probe(cfg: Settings | None = None) -> Probe:
    ssh_binary = cfg.SSH_BINARY if cfg is not None else "ssh"
    batch_mode = cfg.SSH_BATCH_MODE if cfg is not None else True

    async def probe(params: SshParams) -> ProbeResult:
        return await run_remote(build_command(params, ssh_binary, batch_mode))

    return probe
