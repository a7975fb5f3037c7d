"""CLI entry points for vm-disk-provisioner.

This is the only place where errors become process exit statuses; see
``vmdisk.exceptions`` for the code assigned to each error.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import shlex
from pathlib import Path
from typing import List, Optional

from vmdisk.config import load_layout, parse_env
from vmdisk.exceptions import ManagerError
from vmdisk.manager import DiskManager
from vmdisk.models import AttachmentDescriptor, ProvisioningConfig
from vmdisk.topology import descriptors_to_dicts, render_disk_xml, render_qemu_args
from vmdisk.utils import get_env, log, render_size

OUTPUT_FORMATS = ("args", "json", "xml")


def show_config(cfg: ProvisioningConfig) -> None:
    """Print the resolved provisioning configuration."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if isinstance(value, list) and value and hasattr(value[0], "__dataclass_fields__"):
            print(f"  {field.name}:")
            for i, item in enumerate(value):
                print(f"    [{i}]:")
                for sub_field in dataclasses.fields(item):
                    sub_value = getattr(item, sub_field.name)
                    if sub_field.name == "address":
                        sub_value = f"0x{sub_value:x}"
                    elif sub_field.name == "size":
                        sub_value = render_size(sub_value) if sub_value is not None else "default"
                    print(f"      {sub_field.name}: {sub_value}")
        else:
            print(f"  {field.name}: {value}")


def render_output(descriptors: List[AttachmentDescriptor], output: str) -> str:
    if output == "json":
        return json.dumps(descriptors_to_dicts(descriptors), indent=2)
    if output == "xml":
        return render_disk_xml(descriptors)
    return shlex.join(render_qemu_args(descriptors))


def load_config(layout: Optional[str]) -> ProvisioningConfig:
    cfg = parse_env()
    layout = layout or get_env("DISK_LAYOUT")
    if layout:
        cfg = load_layout(Path(layout), cfg)
    return cfg


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Provision VM disk images and describe their attachment")
    parser.add_argument("--layout", metavar="PATH", help="YAML disk layout (default: $DISK_LAYOUT)")
    parser.add_argument(
        "--output",
        choices=OUTPUT_FORMATS,
        default="args",
        help="Attachment description format: QEMU arguments, JSON or libvirt XML (default: args)",
    )
    parser.add_argument("--output-file", metavar="PATH", help="Write the attachment description to PATH")
    parser.add_argument("--show-config", action="store_true", help="Show resolved configuration and exit")
    parser.add_argument("--dry-run", action="store_true", help="Report planned disk actions without changing anything")
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.layout)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return exc.exit_code

    if args.show_config:
        show_config(cfg)
        return 0

    manager = DiskManager(cfg)
    try:
        if args.dry_run:
            log("INFO", "=== Planned disk actions ===")
            for name, step in manager.plan():
                log("INFO", f"{name}: {step}")
            log("INFO", "=== Dry-run complete (no disks changed) ===")
            return 0

        descriptors = manager.provision()
        text = render_output(descriptors, args.output)
        if args.output_file:
            Path(args.output_file).write_text(text + "\n")
            log("INFO", f"Attachment description written to {args.output_file}")
        else:
            print(text, flush=True)
        return 0
    except ManagerError as exc:
        log("ERROR", str(exc))
        return exc.exit_code
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
