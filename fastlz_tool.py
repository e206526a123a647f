#!/usr/bin/env python3
import argparse
import binascii
import enum
import json
import os
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from fastlz import FastLZError, fast_lz, iter_tokens

DEFAULT_MANIFEST = "fastlz_manifest.json"
COMPRESSED_SUFFIX = ".flz"
DECOMPRESSED_SUFFIX = ".bin"

# ===============================================================================
# Checksum
# ===============================================================================

def crc32(data: bytes) -> int:
    """Compute CRC32"""
    return binascii.crc32(data) & 0xffffffff

# ===============================================================================
# Modes
# ===============================================================================

class Mode(enum.Enum):
    DECOMPRESS = 0
    COMPRESS = 1

# ===============================================================================
# Size manifest
# ===============================================================================

@dataclass
class ManifestEntry:
    """Original size and checksum of one compressed file"""
    size: int
    crc32: int

class SizeManifest:
    """Keeps the decompressed sizes that FastLZ streams do not carry"""

    def __init__(self):
        self.entries: Dict[str, ManifestEntry] = {}

    def load_from_json(self, json_path: str):
        """Load entries from a JSON file"""
        if not os.path.exists(json_path):
            return

        with open(json_path, 'r') as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError("manifest must be a JSON object of file entries")

        for name, item in data.items():
            try:
                size = int(item["size"])
                checksum = int(item["crc32"])
            except (KeyError, TypeError, ValueError):
                print(f"WARNING: Skipping malformed manifest entry '{name}'")
                continue

            if size < 0:
                print(f"WARNING: Skipping manifest entry '{name}' with negative size")
                continue

            self.entries[name] = ManifestEntry(size=size, crc32=checksum)

    def save_to_json(self, json_path: str):
        """Save entries to a JSON file"""
        data = {}
        for name, entry in sorted(self.entries.items()):
            data[name] = {
                "size": entry.size,
                "crc32": entry.crc32
            }

        with open(json_path, 'w') as f:
            json.dump(data, f, indent=2)

    def add(self, name: str, data: bytes) -> ManifestEntry:
        entry = ManifestEntry(size=len(data), crc32=crc32(data))
        self.entries[name] = entry
        return entry

    def get(self, name: str) -> Optional[ManifestEntry]:
        return self.entries.get(name)

# ===============================================================================
# Tool
# ===============================================================================

class FastLZTool:
    """Compresses and decompresses files with FastLZ level 1"""

    def __init__(self, manifest: SizeManifest, debug: bool = False,
                 verify: bool = False, skip_checksum: bool = False):
        self.manifest = manifest
        self.debug = debug
        self.verify = verify
        self.skip_checksum = skip_checksum

    def compress_file(self, input_path: str, output_path: Optional[str] = None) -> bool:
        """Compress a file and record its size in the manifest"""
        try:
            with open(input_path, 'rb') as f:
                content = f.read()

            buffer = fast_lz.compress(content)

            if self.debug:
                print(f"\tOriginal data size: {len(content)} bytes")
                print(f"\tCompressed size: {len(buffer)} bytes ({self._ratio(len(buffer), len(content))})")
                print(f"\tTokens: {self._summarize_tokens(buffer)}")

            if self.verify:
                restored = fast_lz.decompress(buffer, len(content))
                if restored != content:
                    print("\tERROR: Round-trip verification failed")
                    return False
                if self.debug:
                    print("\tRound-trip verified")

            if output_path is None:
                output_path = os.path.splitext(input_path)[0] + COMPRESSED_SUFFIX

            with open(output_path, 'wb') as f:
                f.write(buffer)

            entry = self.manifest.add(Path(output_path).name, content)
            if self.debug:
                print(f"\tChecksum: {entry.crc32:08X}")

            print(f"\tSuccessfully compressed to {output_path}")
            return True

        except (OSError, FastLZError) as e:
            print(f"Error compressing {input_path}: {e}")
            return False

    def decompress_file(self, input_path: str, output_path: Optional[str] = None,
                        size: Optional[int] = None) -> bool:
        """Decompress a file, taking its size from the argument or the manifest"""
        try:
            entry = self.manifest.get(Path(input_path).name)

            if size is None:
                if entry is None:
                    print(f"\tERROR: Unknown decompressed size for {input_path}, pass --size")
                    return False
                size = entry.size

            with open(input_path, 'rb') as f:
                data = f.read()

            if self.debug:
                print(f"\tCompressed size: {len(data)} bytes")
                print(f"\tExpected size: {size} bytes")

            buffer = fast_lz.decompress(data, size)

            if self.debug:
                print(f"\tAfter FastLZ decompress: {len(buffer)} bytes (from {len(data)})")

            if entry is not None:
                calculated_checksum = crc32(buffer)
                if self.debug:
                    print(f"\tCalculated checksum: {calculated_checksum:08X}")

                if calculated_checksum != entry.crc32:
                    print(f"\tERROR: Checksum mismatch: {calculated_checksum:08X} != {entry.crc32:08X}")
                    if self.skip_checksum:
                        print("\tProceeding anyway...")
                    else:
                        return False
                elif self.debug:
                    print(f"\tMatched checksum: {calculated_checksum:08X} == {entry.crc32:08X}")

            if output_path is None:
                output_path = os.path.splitext(input_path)[0] + DECOMPRESSED_SUFFIX

            with open(output_path, 'wb') as out_f:
                out_f.write(buffer)

            print(f"\tSuccessfully decompressed to {output_path}")
            return True

        except (OSError, FastLZError) as e:
            print(f"Error decompressing {input_path}: {e}")
            return False

    def _ratio(self, compressed: int, original: int) -> str:
        if not original:
            return "n/a"
        return f"{100.0 * compressed / original:.1f}%"

    def _summarize_tokens(self, data: bytes) -> str:
        """Count tokens by kind"""
        counts = Counter(token.kind.name for token in iter_tokens(data))
        return ", ".join(f"{name}={count}" for name, count in sorted(counts.items())) or "none"

# ===============================================================================
# Command line parsing and main function
# ===============================================================================

def validate_options(args: argparse.Namespace) -> bool:
    """Validate command line options"""
    if not args.input:
        if args.output:
            print("Error: --output requires --input")
            return False
        if args.size is not None:
            print("Error: --size requires --input")
            return False

    if args.size is not None and args.size < 0:
        print("Error: --size must be non-negative")
        return False

    return True

def find_files(mode: Mode, pattern: str, manifest_path: str) -> List[Path]:
    """Files in the current folder the given mode should process"""
    files = []
    outputs = {}
    manifest_name = Path(manifest_path).name

    for file in sorted(Path('.').glob(pattern)):
        if not file.is_file() or file.name == manifest_name:
            continue

        if mode == Mode.COMPRESS:
            # Outputs of either mode are not compressed again
            if file.suffix in (COMPRESSED_SUFFIX, DECOMPRESSED_SUFFIX):
                continue
            # a.txt and a.dat would both be written to a.flz
            output_name = file.stem + COMPRESSED_SUFFIX
            if output_name in outputs:
                print(f"WARNING: Skipping {file.name}, {outputs[output_name]} already compresses to {output_name}")
                continue
            outputs[output_name] = file.name

        files.append(file)

    return files

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="FastLZ level 1 file tool")
    parser.add_argument('-m', '--mode', required=True, choices=['compress', 'decompress'],
                        help="Compress or Decompress")
    parser.add_argument('-s', '--search-pattern',
                        help="Filename filter (default: '*' to compress, '*.flz' to decompress)")
    parser.add_argument('-i', '--input',
                        help="Input file (instead of searching in folder)")
    parser.add_argument('-o', '--output',
                        help="Output file (instead of auto-generating)")
    parser.add_argument('-n', '--size', type=int,
                        help="Decompressed size (instead of reading the manifest)")
    parser.add_argument('--manifest', default=DEFAULT_MANIFEST,
                        help="JSON file recording decompressed sizes and checksums")
    parser.add_argument('--verify', action='store_true',
                        help="Decompress after compressing and compare")
    parser.add_argument('-d', '--debug', action='store_true',
                        help="Enable debug output")
    parser.add_argument('--ignore-checksum', action='store_true',
                        help="Ignore checksum verification errors")

    args = parser.parse_args(argv)

    mode = Mode.COMPRESS if args.mode.lower() == 'compress' else Mode.DECOMPRESS
    if not validate_options(args):
        return 1

    manifest = SizeManifest()
    try:
        manifest.load_from_json(args.manifest)
    except (OSError, ValueError) as e:
        print(f"Error loading manifest {args.manifest}: {e}")
        return 1

    tool = FastLZTool(manifest, args.debug, args.verify, args.ignore_checksum)

    # Single file mode
    if args.input:
        if mode == Mode.DECOMPRESS:
            print(f"Decompressing {args.input}")
            result = tool.decompress_file(args.input, args.output, args.size)
        else:
            print(f"Compressing {args.input}")
            result = tool.compress_file(args.input, args.output)
            if result:
                manifest.save_to_json(args.manifest)

        return 0 if result else 1

    pattern = args.search_pattern
    if pattern is None:
        pattern = '*' if mode == Mode.COMPRESS else '*' + COMPRESSED_SUFFIX

    files = find_files(mode, pattern, args.manifest)
    if not files:
        print(f"No files matching '{pattern}' found.")
        return 1

    success = True
    for file in files:
        if mode == Mode.DECOMPRESS:
            print(f"Decompressing {file.name}")
            result = tool.decompress_file(str(file))
        else:
            print(f"Compressing {file.name}")
            result = tool.compress_file(str(file))

        if not result:
            success = False

    if mode == Mode.COMPRESS:
        manifest.save_to_json(args.manifest)

    return 0 if success else 1

if __name__ == "__main__":
    raise SystemExit(main())
