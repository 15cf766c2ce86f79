#!/usr/bin/env python3
"""
PureScan - command line scanner
Scan a barcode with the camera or type one in, then resolve it
"""

import argparse
import sys

from purescan.checksum import InvalidBarcodeError
from purescan.config import Config
from purescan.lookup import LookupClient, Resolution
from purescan.scan_session import ScanController


def print_resolution(resolution: Resolution):
    product = resolution.record
    print(f"\n{'='*50}")
    print(f"Product: {product.name}")
    print(f"Barcode: {product.barcode}")
    print(f"Brand: {product.brand or 'N/A'}")
    if product.safety_score is not None:
        color = product.safety_color.value if product.safety_color else 'N/A'
        print(f"Safety: {product.safety_score:.1f} ({color})")
    else:
        print("Safety: not scored yet")
    print(f"Status: {resolution.status}")
    print(f"{'='*50}\n")


def main(argv=None):
    """CLI interface"""
    parser = argparse.ArgumentParser(description='PureScan Barcode Scanner')
    parser.add_argument('--barcode', type=str, help='Barcode to look up')
    parser.add_argument('--mode', choices=['barcode', 'camera'], default='barcode', help='Scan mode')
    parser.add_argument('--url', type=str, default=Config.LOOKUP_URL, help='Lookup endpoint base URL')
    parser.add_argument('--max-frames', type=int, default=None, help='Give up after this many frames')
    args = parser.parse_args(argv)

    errors = []
    controller = ScanController(
        LookupClient(base_url=args.url),
        on_error=errors.append,
    )

    if args.mode == 'barcode':
        barcode = args.barcode or input("Enter barcode: ")
        try:
            resolution = controller.submit_manual(barcode)
        except InvalidBarcodeError as e:
            print(f"Invalid barcode: {e}")
            return 2
    else:
        if not controller.start():
            print(f"Could not start scanner: {controller.last_error}")
            return 1
        print("Point the camera at a barcode (Ctrl+C to stop)")
        try:
            resolution = controller.run(max_frames=args.max_frames)
        except KeyboardInterrupt:
            controller.stop()
            return 130

    if resolution:
        print_resolution(resolution)
        return 0

    if errors:
        print(f"Lookup failed: {errors[-1]}")
    else:
        print("No barcode resolved")
    return 1


if __name__ == "__main__":
    sys.exit(main())
