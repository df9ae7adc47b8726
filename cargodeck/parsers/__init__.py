"""Pure text → structure parsers for manifests and cargo tool output."""

from cargodeck.parsers.cargo_audit import parse_audit_json
from cargodeck.parsers.cargo_license import is_problematic_license, parse_license_json
from cargodeck.parsers.cargo_outdated import parse_outdated_json
from cargodeck.parsers.manifest import CargoManifest, load_manifest, parse_manifest
from cargodeck.parsers.toolchain import parse_toolchain_file, parse_toolchain_toml

__all__ = [
    "CargoManifest",
    "is_problematic_license",
    "load_manifest",
    "parse_audit_json",
    "parse_license_json",
    "parse_manifest",
    "parse_outdated_json",
    "parse_toolchain_file",
    "parse_toolchain_toml",
]
