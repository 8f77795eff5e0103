# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Client identification sent with every RPC request.
"""

import importlib.metadata as metadata

PACKAGE_NAME = "smove"


class Metadata:
    CLIENT_HEADER = "x-smove-client"

    @staticmethod
    def get_client_header_val() -> str:
        """Header value of the form ``smove-python/<version>``."""
        try:
            version = metadata.version(PACKAGE_NAME)
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        return f"smove-python/{version}"
