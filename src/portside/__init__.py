"""
portside - build, render and deploy containerized applications.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

__version__ = "0.1.0"
