"""
Core utilities shared by every layer: errors, cancellation, process
execution, archiving and platforms.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""
