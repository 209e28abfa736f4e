#!/usr/bin/env python3
"""
Run a sequence through the temporal chunking engine.

Usage:
    # Seven distinct one-hot items, list-learning defaults:
    python segment.py

    # Longer list, larger items:
    python segment.py --length 12 --dim 16

    # Repeat one item instead of distinct ones:
    python segment.py --repeat

    # Feed items one at a time through the streaming interface:
    python segment.py --stream

    # Pick a preset and show debug logging:
    python segment.py --preset short --verbose
"""

import argparse
import logging

import numpy as np

from chunkfield.core.classifier import MockClassifier
from chunkfield.core.config import (
    list_learning_defaults,
    long_sequences,
    paper_defaults,
    real_time,
    short_sequences,
)
from chunkfield.core.temporal_engine import create_engine

PRESETS = {
    "list": list_learning_defaults,
    "paper": paper_defaults,
    "short": short_sequences,
    "long": long_sequences,
    "realtime": real_time,
}


def make_sequence(length, dim, repeat=False):
    """One-hot items cycling through the dimensions (or one item repeated)."""
    items = np.zeros((length, dim))
    for i in range(length):
        items[i, 0 if repeat else i % dim] = 1.0
    return items


def format_result(label, result):
    """Format a TemporalResult for display."""
    lines = [f"[{label}]"]
    lines.append(f"  Converged: {result.has_temporal_resonance}")
    lines.append(f"  Resonance quality: {result.resonance_quality:.4f}")
    lines.append(f"  Boundaries: {list(result.chunk_boundaries) or 'none'}")
    if result.chunks:
        lengths = ", ".join(str(c.length) for c in result.chunks)
        lines.append(f"  Chunks: {len(result.chunks)} (lengths {lengths})")
    if result.masking_result is not None:
        lines.append(f"  Iterations: {result.masking_result.iterations}")
    if result.is_success():
        lines.append(f"  Category: {result.category_index}")
    else:
        lines.append("  Category: no match")
    return '\n'.join(lines)


def main():
    parser = argparse.ArgumentParser(description="Segment a sequence into chunks")
    parser.add_argument("--length", type=int, default=7, help="Sequence length (default: 7)")
    parser.add_argument("--dim", type=int, default=10, help="Item dimension (default: 10)")
    parser.add_argument("--repeat", action="store_true", help="Repeat a single item")
    parser.add_argument("--stream", action="store_true", help="Stream items one at a time")
    parser.add_argument("--preset", choices=sorted(PRESETS), default="list",
                        help="Configuration preset (default: list)")
    parser.add_argument("--vigilance", type=float, default=0.7, help="Mock classifier vigilance")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = PRESETS[args.preset]()
    sequence = make_sequence(args.length, args.dim, args.repeat)

    with create_engine(args.dim, MockClassifier(args.vigilance), config) as engine:
        print(f"\n{'=' * 60}")
        print(f"  Sequence: {args.length} items x {args.dim} dims")
        print(f"  Scales: {list(config.field_sizes)}")
        print(f"{'=' * 60}\n")

        if args.stream:
            for i, item in enumerate(sequence):
                result = engine.process_sequence_item(item)
                if result.has_new_chunks():
                    print(format_result(f"item {i}", result))
            print(format_result("end", engine.end_sequence()))
            print(f"\nState: {engine.state.value}")
        else:
            print(format_result("learn", engine.learn_temporal(sequence)))
            print(format_result("predict", engine.predict_temporal(sequence)))

        print(f"Categories: {engine.get_category_count()}")
        print(f"Learned chunks: {len(engine.get_temporal_chunks())}\n")


if __name__ == "__main__":
    main()
