# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Move package layout.

`RunContext` knows where a package keeps its manifest and build artifacts and
where smove writes its own outputs::

    <root>/Move.toml
    <root>/build/<package>/bytecode_modules/*.mv
    <root>/build/<package>/bundles/<name>.mvb
    <root>/build/<package>/script_transactions/<script>.mvt
"""

from __future__ import annotations

import logging
import os
import tempfile
import unittest
from typing import Any, Dict, List, Optional

import tomli

from .errors import IoError, ManifestError

MANIFEST_NAME = "Move.toml"
BUILD_DIR = "build"
BYTECODE_MODULES_DIR = "bytecode_modules"
BUNDLES_DIR = "bundles"
SCRIPT_TRANSACTIONS_DIR = "script_transactions"

MODULE_EXTENSION = ".mv"
BUNDLE_EXTENSION = ".mvb"
SCRIPT_TRANSACTION_EXTENSION = ".mvt"


class RunContext:
    """Paths and manifest data for the package rooted at `project_root_dir`.

    The manifest is optional: commands that only need a script or an output
    directory work outside of a package.
    """

    project_root_dir: str
    _manifest: Optional[Dict[str, Any]]
    _manifest_error: Optional[str]

    def __init__(self, project_root_dir: str = "."):
        self.project_root_dir = project_root_dir
        self._manifest = None
        self._manifest_error = None

        manifest_path = os.path.join(project_root_dir, MANIFEST_NAME)
        try:
            with open(manifest_path, "rb") as f:
                self._manifest = tomli.load(f)
        except FileNotFoundError:
            self._manifest_error = (
                f"Manifest file not found at {os.path.abspath(project_root_dir)}"
            )
        except (OSError, tomli.TOMLDecodeError) as e:
            self._manifest_error = f"Invalid manifest {manifest_path}: {e}"

    def manifest(self) -> Dict[str, Any]:
        if self._manifest is None:
            raise ManifestError(self._manifest_error)
        return self._manifest

    def has_manifest(self) -> bool:
        return self._manifest is not None

    def package_name(self) -> str:
        try:
            name = self.manifest()["package"]["name"]
        except (KeyError, TypeError):
            raise ManifestError(
                f"Manifest in {self.project_root_dir} has no [package] name"
            ) from None
        if not isinstance(name, str) or not name:
            raise ManifestError(f"Invalid package name in manifest: {name!r}")
        return name

    def package_build_dir(self) -> str:
        return os.path.join(self.project_root_dir, BUILD_DIR, self.package_name())

    def bundle_output_path(self, bundle_name: str) -> str:
        """Path of the bundle file, creating its directory when needed."""
        directory = os.path.join(self.package_build_dir(), BUNDLES_DIR)
        os.makedirs(directory, exist_ok=True)
        return os.path.join(directory, bundle_name + BUNDLE_EXTENSION)

    def script_tx_output_path(self, script_path: str) -> str:
        """Path of the script transaction file for a compiled script.

        Inside a package the transaction goes to the package build directory,
        otherwise next to the compiled script.
        """
        stem = os.path.splitext(os.path.basename(script_path))[0]
        if self.has_manifest():
            directory = os.path.join(self.package_build_dir(), SCRIPT_TRANSACTIONS_DIR)
            os.makedirs(directory, exist_ok=True)
        else:
            directory = os.path.dirname(script_path)
        return os.path.join(directory, stem + SCRIPT_TRANSACTION_EXTENSION)

    def get_bytecode_modules(self) -> List[str]:
        """Paths of all compiled modules of the project.

        Only ``.mv`` files placed directly in a ``bytecode_modules`` directory
        count; the compiled dependencies live elsewhere in the build tree.
        """
        module_paths = []
        for dirpath, dirnames, filenames in os.walk(self.project_root_dir):
            dirnames.sort()
            if os.path.basename(dirpath) != BYTECODE_MODULES_DIR:
                continue
            for filename in sorted(filenames):
                path = os.path.join(dirpath, filename)
                if filename.endswith(MODULE_EXTENSION) and os.path.isfile(path):
                    module_paths.append(path)
        logging.debug(f"Found {len(module_paths)} compiled modules")
        return module_paths


def read_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise IoError(f"Failure to read filename {path}: {e.strerror}") from e


def write_output(path: str, data: bytes):
    """Replace the file at `path` with `data`."""
    try:
        if os.path.exists(path):
            os.remove(path)
        with open(path, "wb") as f:
            f.write(data)
    except OSError as e:
        raise IoError(f"Failure to write filename {path}: {e.strerror}") from e
    logging.info(f"Wrote {len(data)} bytes to {path}")


class Test(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = self.tmp.name

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, relative: str, data: bytes):
        path = os.path.join(self.root, relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        return path

    def test_manifest(self):
        self.write(MANIFEST_NAME, b'[package]\nname = "car_wash"\nversion = "0.0.1"\n')
        ctx = RunContext(self.root)
        self.assertEqual(ctx.package_name(), "car_wash")
        self.assertEqual(
            ctx.bundle_output_path("car_wash"),
            os.path.join(self.root, "build", "car_wash", "bundles", "car_wash.mvb"),
        )
        self.assertTrue(
            os.path.isdir(os.path.join(self.root, "build", "car_wash", "bundles"))
        )

    def test_missing_manifest(self):
        ctx = RunContext(self.root)
        self.assertFalse(ctx.has_manifest())
        with self.assertRaises(ManifestError):
            ctx.bundle_output_path("bundle")

    def test_invalid_manifest(self):
        self.write(MANIFEST_NAME, b"[package\n")
        with self.assertRaises(ManifestError):
            RunContext(self.root).package_name()

    def test_script_tx_output_path(self):
        script = os.path.join(self.root, "scripts", "transfer.mv")
        self.assertEqual(
            RunContext(self.root).script_tx_output_path(script),
            os.path.join(self.root, "scripts", "transfer.mvt"),
        )

        self.write(MANIFEST_NAME, b'[package]\nname = "pkg"\n')
        self.assertEqual(
            RunContext(self.root).script_tx_output_path(script),
            os.path.join(
                self.root, "build", "pkg", "script_transactions", "transfer.mvt"
            ),
        )

    def test_get_bytecode_modules(self):
        first = self.write("build/pkg/bytecode_modules/a.mv", b"a")
        second = self.write("build/pkg/bytecode_modules/b.mv", b"b")
        self.write("build/pkg/bytecode_modules/dependencies/std/vector.mv", b"v")
        self.write("build/pkg/bytecode_modules/notes.txt", b"")
        self.write("build/pkg/scripts/main.mv", b"s")
        self.assertEqual(RunContext(self.root).get_bytecode_modules(), [first, second])

    def test_write_output_replaces(self):
        path = self.write("out.mvb", b"old contents")
        write_output(path, b"new")
        self.assertEqual(read_bytes(path), b"new")

    def test_read_missing(self):
        with self.assertRaises(IoError) as cm:
            read_bytes(os.path.join(self.root, "missing.mvt"))
        self.assertIn("Failure to read filename", str(cm.exception))


if __name__ == "__main__":
    unittest.main()
