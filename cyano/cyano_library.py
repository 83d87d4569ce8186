"""
A small pure-Python host library exposing sequence, statistics, alignment and
hashing functions as Cyano namespaces.
"""
import hashlib
import logging
import math
import statistics
from typing import Any, Dict, List

from cyano.cyano_bridge import HostBridge, HostError, HostNamespace, host_function
from cyano.cyano_datatypes import is_array, is_number

logger = logging.getLogger(__name__)

_COMPLEMENT = str.maketrans("ACGTUNacgtun", "TGCAANtgcaan")
_ALPHABETS = {
    "dna": set("ACGTN"),
    "rna": set("ACGUN"),
    "protein": set("ACDEFGHIKLMNPQRSTVWY*X"),
}
_BASES = "TCAG"
_AMINO_ACIDS = "FFLLSSSSYY**CC*WLLLLPPPPHHQQRRRRIIIMTTTTNNKKSSRRVVVVAAAADDEEGGGG"
CODON_TABLE: Dict[str, str] = {
    a + b + c: _AMINO_ACIDS[16 * i + 4 * j + k]
    for i, a in enumerate(_BASES)
    for j, b in enumerate(_BASES)
    for k, c in enumerate(_BASES)
}


def _require_sequence(seq: Any) -> str:
    if not isinstance(seq, str):
        raise HostError(f"Expected a sequence string, got {type(seq).__name__}")
    cleaned = "".join(seq.split()).upper()
    if not cleaned:
        raise HostError("Sequence is empty")
    return cleaned


def _require_numbers(data: Any, name: str = "data") -> List[float]:
    if not is_array(data) or not data:
        raise HostError(f"{name} must be a non-empty array of numbers")
    if not all(is_number(x) for x in data):
        raise HostError(f"{name} must contain only numbers")
    return [float(x) for x in data]


class Seq(HostNamespace):
    @host_function
    def gc_content(self, seq):
        s = _require_sequence(seq)
        return sum(1 for base in s if base in "GC") / len(s)

    @host_function
    def reverse_complement(self, seq):
        s = _require_sequence(seq)
        invalid = set(s) - _ALPHABETS["dna"] - {"U"}
        if invalid:
            raise HostError(f"Invalid nucleotide(s): {''.join(sorted(invalid))}")
        return s.translate(_COMPLEMENT)[::-1]

    @host_function
    def transcribe(self, seq):
        return _require_sequence(seq).replace("T", "U")

    @host_function
    def translate(self, seq):
        s = _require_sequence(seq).replace("U", "T")
        protein = []
        for i in range(0, len(s) - len(s) % 3, 3):
            codon = s[i:i + 3]
            protein.append(CODON_TABLE.get(codon, "X"))
        return "".join(protein)

    @host_function
    def validate(self, seq, alphabet="dna"):
        if alphabet not in _ALPHABETS:
            raise HostError(f"Unknown alphabet: {alphabet} (expected one of {', '.join(_ALPHABETS)})")
        return set(_require_sequence(seq)) <= _ALPHABETS[alphabet]

    @host_function
    def parse_fasta(self, data):
        if not isinstance(data, str):
            raise HostError("FASTA input must be a string")
        records = []
        header = None
        chunks: List[str] = []
        for line in data.splitlines():
            line = line.strip()
            if not line:
                continue
            if line.startswith(">"):
                if header is not None:
                    records.append(self._fasta_record(header, chunks))
                header, chunks = line[1:], []
            elif header is None:
                raise HostError("FASTA data must start with a '>' header line")
            else:
                chunks.append(line)
        if header is not None:
            records.append(self._fasta_record(header, chunks))
        if not records:
            raise HostError("No FASTA records found")
        return records

    def _fasta_record(self, header: str, chunks: List[str]) -> Dict[str, Any]:
        ident, _, description = header.partition(" ")
        sequence = "".join(chunks).upper()
        gc = sum(1 for b in sequence if b in "GC") / len(sequence) if sequence else 0.0
        return {
            "id": ident,
            "description": description,
            "sequence": sequence,
            "length": float(len(sequence)),
            "gc_content": gc,
        }


class Stats(HostNamespace):
    @host_function
    def describe(self, data):
        values = _require_numbers(data)
        variance = statistics.variance(values) if len(values) > 1 else 0.0
        return {
            "count": float(len(values)),
            "mean": statistics.fmean(values),
            "median": statistics.median(values),
            "min": min(values),
            "max": max(values),
            "variance": variance,
            "std_dev": math.sqrt(variance),
        }

    @host_function
    def mean(self, data):
        return statistics.fmean(_require_numbers(data))

    @host_function
    def median(self, data):
        return float(statistics.median(_require_numbers(data)))

    @host_function
    def pearson(self, x, y):
        xs, ys = _require_numbers(x, "x"), _require_numbers(y, "y")
        if len(xs) != len(ys):
            raise HostError(f"x and y must have the same length ({len(xs)} != {len(ys)})")
        if len(xs) < 2:
            raise HostError("pearson needs at least two observations")
        mx, my = statistics.fmean(xs), statistics.fmean(ys)
        sxy = sum((a - mx) * (b - my) for a, b in zip(xs, ys))
        sxx = sum((a - mx) ** 2 for a in xs)
        syy = sum((b - my) ** 2 for b in ys)
        if sxx == 0 or syy == 0:
            raise HostError("pearson is undefined for constant input")
        return sxy / math.sqrt(sxx * syy)


class Align(HostNamespace):
    MATCH = 2
    MISMATCH = -1
    GAP = -2

    @host_function
    def align_dna(self, query, target, mode="global"):
        q, t = _require_sequence(query), _require_sequence(target)
        if mode not in ("global", "local"):
            raise HostError(f"Unknown alignment mode: {mode} (expected global or local)")
        local = mode == "local"
        rows, cols = len(q) + 1, len(t) + 1
        score = [[0] * cols for _ in range(rows)]
        if not local:
            for i in range(1, rows):
                score[i][0] = i * self.GAP
            for j in range(1, cols):
                score[0][j] = j * self.GAP

        best, best_pos = 0, (0, 0)
        for i in range(1, rows):
            for j in range(1, cols):
                diag = score[i - 1][j - 1] + (self.MATCH if q[i - 1] == t[j - 1] else self.MISMATCH)
                cell = max(diag, score[i - 1][j] + self.GAP, score[i][j - 1] + self.GAP)
                if local:
                    cell = max(cell, 0)
                    if cell > best:
                        best, best_pos = cell, (i, j)
                score[i][j] = cell

        i, j = best_pos if local else (len(q), len(t))
        final = score[i][j]
        aq, at = [], []
        while i > 0 or j > 0:
            if local and score[i][j] == 0:
                break
            if i > 0 and j > 0 and score[i][j] == score[i - 1][j - 1] + (
                    self.MATCH if q[i - 1] == t[j - 1] else self.MISMATCH):
                aq.append(q[i - 1])
                at.append(t[j - 1])
                i, j = i - 1, j - 1
            elif i > 0 and score[i][j] == score[i - 1][j] + self.GAP:
                aq.append(q[i - 1])
                at.append("-")
                i -= 1
            else:
                aq.append("-")
                at.append(t[j - 1])
                j -= 1

        aligned_query, aligned_target = "".join(reversed(aq)), "".join(reversed(at))
        matches = sum(1 for a, b in zip(aligned_query, aligned_target) if a == b)
        return {
            "score": float(final),
            "aligned_query": aligned_query,
            "aligned_target": aligned_target,
            "identity": matches / len(aligned_query) if aligned_query else 0.0,
            "mode": mode,
        }


class Core(HostNamespace):
    @host_function
    def sha256(self, data):
        if not isinstance(data, str):
            raise HostError("sha256 expects a string")
        return hashlib.sha256(data.encode("utf-8")).hexdigest()


def load_default_bridge() -> HostBridge:
    """Build the bridge with the built-in namespaces."""
    bridge = HostBridge([Seq(), Stats(), Align(), Core()])
    logger.debug("loaded host namespaces: %s", ", ".join(bridge.namespaces()))
    return bridge


__all__ = ["Align", "CODON_TABLE", "Core", "Seq", "Stats", "load_default_bridge"]
