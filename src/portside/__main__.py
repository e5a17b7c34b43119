"""
Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from portside.cli.app import cli_main

if __name__ == "__main__":
    cli_main()
