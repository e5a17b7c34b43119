#!/usr/bin/env python3
"""Module to run external tools.

Every build and deploy backend launches its tool (docker, packer, kubectl,
terraform, gcloud) through this class, so failures, output streaming and
cancellation behave the same everywhere.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""
# built-in modules
import logging
import os
import shlex
import subprocess
import threading
import typing

# user-defined modules
from portside.core.cancellation import CancellationToken
from portside.core.errors import BackendExecutionError, CancellationError

logger = logging.getLogger(__name__)

# Seconds between cancellation checks while a child process runs.
POLL_INTERVAL = 0.2


class Console:
    """Class to run console commands.

    Attributes:
        shellVerbose (bool): Log each command before running it.
        live_output (bool): Stream child output to the writer as it arrives.
    """

    def __init__(self, shellVerbose: bool = True, live_output: bool = True) -> None:
        self.shellVerbose = shellVerbose
        self.live_output = live_output

    def run(
        self,
        args: typing.List[str],
        backend: str,
        stage: str,
        out: typing.Optional[typing.TextIO] = None,
        cwd: typing.Optional[str] = None,
        env: typing.Optional[typing.Dict[str, str]] = None,
        stdin: typing.Optional[str] = None,
        token: typing.Optional[CancellationToken] = None,
        timeout: typing.Optional[float] = None,
        separate_stderr: bool = False,
    ) -> str:
        """Run a command and return its combined output.

        With ``separate_stderr`` only standard output is returned, unstripped;
        standard error is logged line by line.

        Args:
            args: The argv of the command.
            backend: Backend name used when wrapping failures.
            stage: Stage identifier (init, apply, destroy, build...).
            out: Writer receiving the child's output.
            cwd: Working directory.
            env: Extra environment variables layered over os.environ.
            stdin: Text fed to the child's standard input.
            token: Cancellation token; the child is terminated when cancelled.
            timeout: Seconds before the child is killed.
            separate_stderr: Keep standard error out of the returned output.

        Returns:
            str: The output of the command.

        Raises:
            BackendExecutionError: If the command exits non-zero or cannot start.
            CancellationError: If the token is cancelled before or while running.
        """
        if token is not None:
            token.raise_if_cancelled()

        command = " ".join(shlex.quote(a) for a in args)
        if self.shellVerbose:
            logger.info("Running %s command: %s", backend, command)

        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        try:
            proc = subprocess.Popen(
                args,
                stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE if separate_stderr else subprocess.STDOUT,
                cwd=cwd,
                env=full_env,
            )
        except OSError as exc:
            raise BackendExecutionError(
                f"{backend} {stage} failed: could not start {args[0]}: {exc}",
                backend=backend,
                stage=stage,
                cause=exc,
            ) from exc

        chunks: typing.List[str] = []
        reader = threading.Thread(
            target=self._pump, args=(proc, chunks, out), daemon=True
        )
        readers = [reader]
        if separate_stderr:
            readers.append(
                threading.Thread(
                    target=self._drain_stderr, args=(proc, backend), daemon=True
                )
            )
        for thread in readers:
            thread.start()
        if stdin is not None:
            try:
                proc.stdin.write(stdin.encode("utf-8"))
                proc.stdin.close()
            except BrokenPipeError:
                pass

        waited = 0.0
        while True:
            try:
                proc.wait(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                waited += POLL_INTERVAL
                if token is not None and token.cancelled:
                    self._terminate(proc)
                    self._join(readers)
                    raise CancellationError(
                        f"{backend} {stage} cancelled: {token.reason}"
                    )
                if timeout is not None and waited >= timeout:
                    self._terminate(proc)
                    self._join(readers)
                    raise BackendExecutionError(
                        f"{backend} {stage} timed out after {timeout}s",
                        backend=backend,
                        stage=stage,
                    )
        self._join(readers)
        output = "".join(chunks)

        if proc.returncode != 0:
            raise BackendExecutionError(
                f"{backend} {stage} failed: '{command}' exited with code {proc.returncode}",
                backend=backend,
                stage=stage,
                returncode=proc.returncode,
            )
        return output if separate_stderr else output.strip()

    def _pump(self, proc, chunks: typing.List[str], out) -> None:
        # Decode with replacement so a bad byte never kills the reader.
        for raw_line in iter(proc.stdout.readline, b""):
            line = raw_line.decode("utf-8", errors="replace")
            chunks.append(line)
            if self.live_output and out is not None:
                out.write(line)
        proc.stdout.close()

    @staticmethod
    def _drain_stderr(proc, backend: str) -> None:
        for raw_line in iter(proc.stderr.readline, b""):
            line = raw_line.decode("utf-8", errors="replace").rstrip("\n")
            if line:
                logger.warning("%s: %s", backend, line)
        proc.stderr.close()

    @staticmethod
    def _join(readers: typing.List[threading.Thread]) -> None:
        for thread in readers:
            thread.join()

    @staticmethod
    def _terminate(proc) -> None:
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
