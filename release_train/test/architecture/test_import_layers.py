from __future__ import annotations

import pytest

from ._utils import iter_python_files, matches_prefix, package_root, parse_imports

# layer -> modules it must never import
FORBIDDEN: dict[str, tuple[str, ...]] = {
    "core": ("release_train.platform", "release_train.release", "release_train.cli", "typer"),
    "platform": ("release_train.release", "release_train.cli", "typer", "rich"),
    "git": ("release_train.cli", "typer", "rich"),
    "release": ("release_train.cli", "typer", "rich"),
}


@pytest.mark.parametrize("layer", sorted(FORBIDDEN))
def test_layer_does_not_import_upwards(layer: str) -> None:
    root = package_root()
    offenders: list[str] = []

    for file_path in iter_python_files(root / layer):
        rel = file_path.relative_to(root).as_posix()
        for item in parse_imports(file_path):
            for prefix in FORBIDDEN[layer]:
                if matches_prefix(item.module, prefix):
                    offenders.append(f"{rel}:{item.line}: forbidden import '{item.module}'")

    assert not offenders, f"{layer} dependency violations:\n" + "\n".join(offenders)
