# structsvm/model/checkpoint.py
from __future__ import annotations

import io
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

import numpy as np
from pydantic import BaseModel, Field, ValidationError

from structsvm.model.cost import CostModel
from structsvm.model.parameters import WeightArena
from structsvm.utils.errors import CheckpointFormatError
from structsvm.utils.logger import logs

MAGIC = "structsvm-checkpoint"
VERSION = 1

_RECORD = re.compile(r"^(?P<name>.*)\((?P<fields>[^()]*)\)$")


class CheckpointHeader(BaseModel):
    """
    Versioned header. Every key is written on its own "key=value" line
    before the first record.
    """

    version: int = Field(VERSION, ge=1)
    variant: str
    labels: List[Any]
    num_features: int = Field(ge=0)
    num_costs: int = Field(0, ge=0)
    cost_model: Optional[str] = None
    cost_c: float = 1.0
    cost_factor_mode: str = "actual"
    t: int = Field(1, ge=1)
    s: float = 1.0


@dataclass
class Checkpoint:
    header: CheckpointHeader
    arena: WeightArena


# ---------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------
def dump(
    arena: WeightArena,
    stream: TextIO,
    *,
    variant: str,
    labels: List[Any],
    cost: Optional[CostModel] = None,
) -> None:
    """
    Line-oriented text:
        labelBias=<label>(b=, G=, u=, index=)
        labelFeature=<label>-<feature name>(w=, G=, u=, labelIndex=, featureIndex=)
        cost=<term>(v=, G=, u=, index=)

    Feature coordinates are written when w != 0 or G != 0, so pruned
    (L1) coordinates keep their AdaGrad state for warm restarts.
    Floats use repr() and round-trip exactly.
    """
    header = CheckpointHeader(
        variant=variant,
        labels=list(labels),
        num_features=arena.num_features,
        num_costs=arena.num_costs,
        cost_model=cost.name if cost is not None else None,
        cost_c=cost.c if cost is not None else 1.0,
        cost_factor_mode=getattr(cost, "factor_mode", "actual"),
        t=arena.t,
        s=arena.s,
    )

    stream.write(MAGIC + "\n")
    for key, value in header.model_dump().items():
        if key == "labels":
            value = encode_labels(value)
        elif value is None:
            value = ""
        elif isinstance(value, float):
            value = repr(value)
        stream.write(f"{key}={value}\n")

    bias = arena.bias
    for i, label in enumerate(labels):
        stream.write(
            f"labelBias={label}(b={_f(bias.w[i])}, G={_f(bias.G[i])}, u={_f(bias.u[i])}, index={i})\n"
        )

    feats = arena.features
    live = np.flatnonzero((feats.w != 0) | (feats.G != 0))
    for wi in live:
        li, fi = arena.label_of(int(wi)), arena.feature_of(int(wi))
        name = arena.feature_names.get(fi, f"f{fi}")
        stream.write(
            f"labelFeature={labels[li]}-{name}"
            f"(w={_f(feats.w[wi])}, G={_f(feats.G[wi])}, u={_f(feats.u[wi])}, "
            f"labelIndex={li}, featureIndex={fi})\n"
        )

    costs = arena.costs
    for i in range(arena.num_costs):
        term = cost.term(i) if cost is not None else f"c{i}"
        stream.write(
            f"cost={term}(v={_f(costs.w[i])}, G={_f(costs.G[i])}, u={_f(costs.u[i])}, index={i})\n"
        )


def dumps(arena: WeightArena, **kwargs) -> str:
    buf = io.StringIO()
    dump(arena, buf, **kwargs)
    return buf.getvalue()


def save(path: Union[str, Path], arena: WeightArena, **kwargs) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    text = dumps(arena, **kwargs)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    logs.info(f"[Checkpoint] saved {path} t={arena.t}")
    return path


# ---------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------
def load(stream: TextIO) -> Checkpoint:
    lines = [ln.rstrip("\n") for ln in stream if ln.strip()]
    if not lines or lines[0].strip() != MAGIC:
        raise CheckpointFormatError("missing checkpoint magic line")

    raw_header: Dict[str, Any] = {}
    pos = 1
    while pos < len(lines) and not _is_record(lines[pos]):
        key, value = _split(lines[pos], pos)
        raw_header[key] = value
        pos += 1

    try:
        if "labels" in raw_header:
            raw_header["labels"] = json.loads(raw_header["labels"])
        if raw_header.get("cost_model") == "":
            raw_header["cost_model"] = None
        header = CheckpointHeader(**raw_header)
    except (ValueError, ValidationError) as e:
        raise CheckpointFormatError(f"bad checkpoint header: {e}") from e

    if header.version > VERSION:
        raise CheckpointFormatError(f"unsupported checkpoint version {header.version}")

    arena = WeightArena(
        num_labels=len(header.labels),
        num_features=header.num_features,
        num_costs=header.num_costs,
        t=header.t,
        s=header.s,
    )

    for lineno in range(pos, len(lines)):
        kind, body = _split(lines[lineno], lineno)
        name, fields = _parse_record(body, lineno)
        try:
            if kind == "labelBias":
                i = int(fields["index"])
                arena.bias.w[i], arena.bias.G[i], arena.bias.u[i] = _triple(fields, "b")
            elif kind == "labelFeature":
                li, fi = int(fields["labelIndex"]), int(fields["featureIndex"])
                wi = arena.weight_index(li, fi)
                arena.features.w[wi], arena.features.G[wi], arena.features.u[wi] = _triple(fields, "w")
                prefix = f"{header.labels[li]}-"
                arena.feature_names[fi] = name[len(prefix):] if name.startswith(prefix) else name
            elif kind == "cost":
                i = int(fields["index"])
                arena.costs.w[i], arena.costs.G[i], arena.costs.u[i] = _triple(fields, "v")
            else:
                raise CheckpointFormatError(f"line {lineno + 1}: unknown record {kind!r}")
        except (KeyError, IndexError, ValueError) as e:
            raise CheckpointFormatError(f"line {lineno + 1}: {e!r}") from e

    return Checkpoint(header=header, arena=arena)


def loads(text: str) -> Checkpoint:
    return load(io.StringIO(text))


def read(path: Union[str, Path]) -> Checkpoint:
    with open(path, "r", encoding="utf-8") as f:
        ckpt = load(f)
    logs.info(f"[Checkpoint] loaded {path} t={ckpt.arena.t}")
    return ckpt


# ---------------- helpers ----------------

def encode_labels(value) -> str:
    """JSON text for labels (or any structure holding them); numpy scalars become python ones."""
    try:
        return json.dumps(value, default=_plain_label)
    except (TypeError, ValueError) as e:
        raise CheckpointFormatError(f"labels cannot be written to a checkpoint: {e}") from e


def _plain_label(obj):
    # numpy scalars -> python scalars
    if isinstance(obj, np.generic):
        return obj.item()
    raise TypeError(f"unsupported label type {type(obj).__name__}")


def _f(x) -> str:
    return repr(float(x))


def _split(line: str, lineno: int):
    if "=" not in line:
        raise CheckpointFormatError(f"line {lineno + 1}: expected key=value, got {line!r}")
    key, value = line.split("=", 1)
    return key.strip(), value.strip()


def _is_record(line: str) -> bool:
    return line.split("=", 1)[0] in ("labelBias", "labelFeature", "cost")


def _parse_record(body: str, lineno: int):
    m = _RECORD.match(body)
    if m is None:
        raise CheckpointFormatError(f"line {lineno + 1}: malformed record {body!r}")
    fields = {}
    for part in m.group("fields").split(","):
        k, _, v = part.strip().partition("=")
        fields[k] = v
    return m.group("name"), fields


def _triple(fields, value_key: str):
    return float(fields[value_key]), float(fields["G"]), float(fields["u"])
