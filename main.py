#!/usr/bin/env python3
"""
shrinkwrap - Main Entry Point
Fit videos under a target size (default 9.8MB, hard ceiling 10MB)

When run without arguments, processes every *.mp4 in the current directory:
1. Copies files already under the ceiling unchanged
2. Re-encodes the rest with adaptive two-pass bitrate targeting
3. Falls back to downscaling, a constant-quality encode, then splitting
4. Writes optimized files and a summary table to ./optimized
"""

import sys

# Force UTF-8 encoding for console output
if sys.platform.startswith('win'):
    if hasattr(sys.stdout, 'reconfigure'):
        sys.stdout.reconfigure(encoding='utf-8')
    if hasattr(sys.stderr, 'reconfigure'):
        sys.stderr.reconfigure(encoding='utf-8')

from shrinkwrap.cli import main

if __name__ == '__main__':
    main()
