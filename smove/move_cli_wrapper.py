# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Wrapper around the external Move CLI used to build packages.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
import unittest
from typing import List
from unittest import mock

from .common import MOVE_CLI_PATH
from .errors import MoveCliError


class MoveCLIWrapper:
    """Runs the Move CLI found at ``MOVE_CLI_PATH`` (or ``move`` on ``PATH``)."""

    @staticmethod
    def cli_path() -> str:
        return MOVE_CLI_PATH

    @staticmethod
    def does_cli_exist() -> bool:
        return shutil.which(MoveCLIWrapper.cli_path()) is not None

    @staticmethod
    def build(package_dir: str):
        """Build the package in `package_dir` with ``move build``.

        Raises:
            MoveCliError: If the CLI is missing or the build fails. The error
                carries the CLI's output.
        """
        MoveCLIWrapper.run(["build", "--path", package_dir])

    @staticmethod
    def run(args: List[str]) -> str:
        if not MoveCLIWrapper.does_cli_exist():
            raise MoveCliError(
                f"Move CLI not found at {MoveCLIWrapper.cli_path()!r}, "
                "set MOVE_CLI_PATH to its location"
            )

        command = [MoveCLIWrapper.cli_path(), *args]
        logging.info(f"Running {' '.join(command)}")
        result = subprocess.run(command, capture_output=True, text=True)
        if result.returncode != 0:
            output = "\n".join(part for part in [result.stdout, result.stderr] if part)
            raise MoveCliError(
                f"`{' '.join(command)}` failed with exit code {result.returncode}:\n"
                f"{output.strip()}"
            )
        logging.debug(result.stdout)
        return result.stdout


class Test(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def cli(self, script: str):
        path = os.path.join(self.tmp.name, "move")
        with open(path, "w") as f:
            f.write(script)
        os.chmod(path, 0o755)
        return mock.patch(f"{__name__}.MOVE_CLI_PATH", path)

    def test_missing_cli(self):
        missing = os.path.join(self.tmp.name, "no-such-move")
        with mock.patch(f"{__name__}.MOVE_CLI_PATH", missing):
            self.assertFalse(MoveCLIWrapper.does_cli_exist())
            with self.assertRaises(MoveCliError):
                MoveCLIWrapper.build(self.tmp.name)

    @unittest.skipIf(os.name == "nt", "requires a POSIX shell")
    def test_build(self):
        with self.cli('#!/bin/sh\necho "BUILDING $3"\n'):
            output = MoveCLIWrapper.run(["build", "--path", "pkg"])
        self.assertEqual(output, "BUILDING pkg\n")

    @unittest.skipIf(os.name == "nt", "requires a POSIX shell")
    def test_build_failure(self):
        script = '#!/bin/sh\necho "error[E01002]: unexpected token" >&2\nexit 1\n'
        with self.cli(script), self.assertRaises(MoveCliError) as cm:
            MoveCLIWrapper.build(self.tmp.name)
        self.assertIn("unexpected token", str(cm.exception))


if __name__ == "__main__":
    unittest.main()
