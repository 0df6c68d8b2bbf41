#!/usr/bin/env python3
"""Realign hand-drawn Unicode box diagrams.

Detects boxes drawn with box-drawing characters, repairs small edge
misalignments, gives every box in a visual column the same width and
centre, and moves vertical connector lines under the realigned boxes.

Handles:
- edges drifting up to a few columns from their corners
- boxes stacked in one column, or several columns side by side
- connector rows (│ v ^ ┬ ┴ ...) between boxes

Only the square-corner set is recognised (┌ ┐ └ ┘ │ ─). Everything else
passes through with tabs expanded and trailing whitespace stripped.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Collection, Iterable, List, Optional, Set
import argparse
import logging
import os
import sys

logger = logging.getLogger(__name__)

# =============================================================================
# Characters and defaults
# =============================================================================

BOX_TL = '┌'
BOX_TR = '┐'
BOX_BL = '└'
BOX_BR = '┘'
BOX_V = '│'
HORIZ_LINE = '─'

LEFT_EDGE_CHARS = frozenset({BOX_TL, BOX_BL, BOX_V})
RIGHT_EDGE_CHARS = frozenset({BOX_TR, BOX_BR, BOX_V})

CONNECTOR_CHARS = frozenset({
    '│', '|', 'v', '^', '┴', '┬', '┼', '├', '┤', '╵', '╷',
})

TAB_WIDTH = 2
EDGE_TOLERANCE = 4
CLUSTER_THRESHOLD = 8

# Inputs larger than this are refused by the CLI (10MB)
MAX_INPUT_SIZE = 10 * 1024 * 1024

# =============================================================================
# Types
# =============================================================================

RowBuffers = List[List[str]]


@dataclass
class RetouchConfig:
    tabWidth: int = TAB_WIDTH
    edgeTolerance: int = EDGE_TOLERANCE
    clusterThreshold: int = CLUSTER_THRESHOLD

    def __post_init__(self) -> None:
        for name in ('tabWidth', 'edgeTolerance', 'clusterThreshold'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")


@dataclass(frozen=True)
class Box:
    """A detected box.

    left/right are the extents after scanning the interior rows and may lie
    outside the corner columns the box was detected from.
    """
    top: int
    bottom: int
    left: int
    right: int
    width: int
    center: int
    topLeft: int
    topRight: int
    bottomLeft: int
    bottomRight: int


@dataclass
class Anchor:
    center: int
    boxes: List[Box] = field(default_factory=list)


@dataclass(frozen=True)
class Segment:
    text: str
    originalLeft: int
    originalRight: int


# =============================================================================
# Line normalizer
# =============================================================================

def normalize_lines(text: str, tab_width: int = TAB_WIDTH) -> List[str]:
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    tab = ' ' * tab_width
    return [line.replace('\t', tab).rstrip() for line in text.split('\n')]


# =============================================================================
# Box detection
# =============================================================================

def find_char_in_range(line: str, chars: Collection[str], center: int, tolerance: int, lower: int = 0) -> Optional[int]:
    """Leftmost column within center±tolerance (and not before lower) holding one of chars."""
    start = max(lower, center - tolerance)
    end = min(len(line) - 1, center + tolerance)
    for i in range(start, end + 1):
        if line[i] in chars:
            return i
    return None


def close_box(lines: List[str], top: int, left: int, top_right: int, tolerance: int = EDGE_TOLERANCE) -> Optional[Box]:
    for bottom in range(top + 1, len(lines)):
        bottom_line = lines[bottom]
        bl = find_char_in_range(bottom_line, BOX_BL, left, tolerance)
        br = find_char_in_range(bottom_line, BOX_BR, top_right, tolerance)
        if bl is None or br is None or bl >= br:
            continue

        min_left = min(left, bl)
        max_right = max(top_right, br)
        for y in range(top + 1, bottom):
            mid_line = lines[y]
            left_edge = find_char_in_range(mid_line, LEFT_EDGE_CHARS, min_left, tolerance)
            right_edge = find_char_in_range(mid_line, RIGHT_EDGE_CHARS, max_right, tolerance)
            if left_edge is not None:
                min_left = min(min_left, left_edge)
            if right_edge is not None:
                max_right = max(max_right, right_edge)

        width = max_right - min_left + 1
        return Box(
            top=top,
            bottom=bottom,
            left=min_left,
            right=max_right,
            width=width,
            center=min_left + width // 2,
            topLeft=left,
            topRight=top_right,
            bottomLeft=bl,
            bottomRight=br,
        )
    return None


def detect_boxes(lines: List[str], tolerance: int = EDGE_TOLERANCE) -> List[Box]:
    boxes: List[Box] = []
    for top, line in enumerate(lines):
        col = line.find(BOX_TL)
        while col != -1:
            top_right = line.find(BOX_TR, col + 1)
            if top_right == -1:
                col = line.find(BOX_TL, col + 1)
                continue
            box = close_box(lines, top, col, top_right, tolerance)
            if box is not None:
                boxes.append(box)
            # a row may open several boxes side by side
            col = line.find(BOX_TL, top_right + 1)
    return boxes


def spanned_rows(boxes: Iterable[Box]) -> Set[int]:
    rows: Set[int] = set()
    for box in boxes:
        rows.update(range(box.top, box.bottom + 1))
    return rows


# =============================================================================
# Clusters and anchors
# =============================================================================

def cluster_boxes(boxes: List[Box], threshold: int = CLUSTER_THRESHOLD) -> List[List[Box]]:
    """Group boxes into visual columns.

    Only neighbouring centres are compared, so a chain of boxes each within
    threshold of the next forms one cluster however wide it spreads.
    """
    if not boxes:
        return []
    ordered = sorted(boxes, key=lambda b: b.center)
    clusters: List[List[Box]] = [[ordered[0]]]
    for prev, curr in zip(ordered, ordered[1:]):
        if curr.center - prev.center > threshold:
            clusters.append([curr])
        else:
            clusters[-1].append(curr)
    return clusters


def find_anchor(boxes: List[Box]) -> int:
    widest = boxes[0]
    for box in boxes:
        if box.width > widest.width:
            widest = box
    return widest.center


def is_connector_char(c: str) -> bool:
    return c in CONNECTOR_CHARS


def connector_positions(line: str) -> List[int]:
    return [i for i, c in enumerate(line) if is_connector_char(c)]


def is_connector_only_line(line: str) -> bool:
    has_connector = False
    for c in line:
        if is_connector_char(c):
            has_connector = True
        elif c != ' ':
            return False
    return has_connector


def select_anchors(lines: List[str], boxes: List[Box], threshold: int = CLUSTER_THRESHOLD) -> List[Anchor]:
    anchors = [Anchor(center=find_anchor(cluster), boxes=cluster)
               for cluster in cluster_boxes(boxes, threshold)]
    if len(anchors) < 2:
        return anchors

    in_box = spanned_rows(boxes)
    connector_cols: Set[int] = set()
    for y, line in enumerate(lines):
        if y not in in_box:
            connector_cols.update(connector_positions(line))

    # A single connector column running through the whole diagram ties
    # every box to one anchor.
    if connector_cols and max(connector_cols) - min(connector_cols) <= threshold:
        logger.debug("Merging %d clusters onto one connector column", len(anchors))
        return [Anchor(center=find_anchor(boxes), boxes=list(boxes))]
    return anchors


def nearest_anchor(anchors: List[Anchor], col: int) -> int:
    best = anchors[0]
    for anchor in anchors:
        if abs(col - anchor.center) < abs(col - best.center):
            best = anchor
    return best.center


# =============================================================================
# Segments
# =============================================================================

def is_horizontal_border(inner: str) -> bool:
    solid = inner.replace(' ', '')
    return bool(solid) and all(c == HORIZ_LINE for c in solid)


def extract_box_segment(line: str, box: Box, tolerance: int = EDGE_TOLERANCE) -> Segment:
    left_edge = find_char_in_range(line, LEFT_EDGE_CHARS, box.left, tolerance)
    right_edge = None
    if left_edge is not None:
        # on narrow boxes the right window reaches back over the left │
        right_edge = find_char_in_range(line, RIGHT_EDGE_CHARS, box.right, tolerance, lower=left_edge + 1)

    if left_edge is None or right_edge is None:
        start = max(0, box.left)
        end = min(len(line), box.right + 1)
        return Segment(line[start:end].ljust(box.width), start, end - 1)

    inner = line[left_edge + 1:right_edge]
    inner_width = box.width - 2
    if is_horizontal_border(inner):
        inner = HORIZ_LINE * inner_width
    else:
        inner = inner[:inner_width].ljust(inner_width)

    return Segment(line[left_edge] + inner + line[right_edge], left_edge, right_edge)


# =============================================================================
# Placement
# =============================================================================

def mk_row_buffers(lines: List[str]) -> RowBuffers:
    return [list(line) for line in lines]


def ensure_length(row: List[str], length: int) -> None:
    if len(row) < length:
        row.extend([' '] * (length - len(row)))


def rows_to_lines(rows: RowBuffers) -> List[str]:
    return [''.join(row).rstrip() for row in rows]


def place_segments(lines: List[str], anchors: List[Anchor], tolerance: int = EDGE_TOLERANCE) -> List[str]:
    """Rewrite every box at its anchor-derived column.

    Segments are always read from the untouched input rows; writes land in
    anchor order then box order, and a later box overwrites an earlier one.
    """
    rows = mk_row_buffers(lines)

    for anchor in anchors:
        for box in anchor.boxes:
            target_left = anchor.center - box.width // 2

            for y in range(box.top, box.bottom + 1):
                segment = extract_box_segment(lines[y], box, tolerance)
                row = rows[y]

                clear_start = min(segment.originalLeft, box.left)
                clear_end = max(segment.originalRight, box.right)
                for x in range(clear_start, min(clear_end + 1, len(row))):
                    row[x] = ' '

                ensure_length(row, target_left + len(segment.text))
                for i, ch in enumerate(segment.text):
                    if target_left + i >= 0:
                        row[target_left + i] = ch

    return rows_to_lines(rows)


# =============================================================================
# Connectors
# =============================================================================

def shift_connector_line(line: str, anchors: List[Anchor]) -> str:
    positions = connector_positions(line)
    if not positions:
        return line

    if is_connector_only_line(line):
        moved = [(line[pos], nearest_anchor(anchors, pos)) for pos in positions]
        row = [' '] * (max(target for _, target in moved) + 1)
        for ch, target in moved:
            row[target] = ch
        return ''.join(row).rstrip()

    if len(positions) == 1:
        delta = nearest_anchor(anchors, positions[0]) - positions[0]
        if delta > 0:
            return ' ' * delta + line
        if delta < 0:
            leading = len(line) - len(line.lstrip())
            return line[min(-delta, leading):]

    return line


def shift_connectors(lines: List[str], anchors: List[Anchor], skip_rows: Set[int]) -> List[str]:
    return [line if y in skip_rows else shift_connector_line(line, anchors)
            for y, line in enumerate(lines)]


# =============================================================================
# Top-level retouch
# =============================================================================

def retouch_lines(lines: List[str], config: RetouchConfig) -> List[str]:
    boxes = detect_boxes(lines, config.edgeTolerance)
    if not boxes:
        return lines

    anchors = select_anchors(lines, boxes, config.clusterThreshold)
    logger.debug("Detected %d boxes in %d anchor groups", len(boxes), len(anchors))

    placed = place_segments(lines, anchors, config.edgeTolerance)
    return shift_connectors(placed, anchors, spanned_rows(boxes))


def retouch_diagram(text: str, tab_width: int = TAB_WIDTH, edge_tolerance: int = EDGE_TOLERANCE, cluster_threshold: int = CLUSTER_THRESHOLD) -> str:
    config = RetouchConfig(
        tabWidth=tab_width,
        edgeTolerance=edge_tolerance,
        clusterThreshold=cluster_threshold,
    )
    lines = normalize_lines(text, config.tabWidth)
    return '\n'.join(retouch_lines(lines, config))


# =============================================================================
# CLI
# =============================================================================

def check_size(size: int, name: str) -> None:
    if size > MAX_INPUT_SIZE:
        raise ValueError(f"{name} too large: {size} bytes (max {MAX_INPUT_SIZE})")


def read_input(path: str) -> str:
    if path == '-':
        # bounded read; a longer stream is over the limit whatever its encoding
        text = sys.stdin.read(MAX_INPUT_SIZE + 1)
        check_size(len(text.encode('utf-8')), 'stdin')
        return text

    check_size(os.path.getsize(path), path)
    # newline='' keeps CRLF visible so in-place rewrites count it as a change
    with open(path, 'r', encoding='utf-8', newline='') as f:
        return f.read()


def write_output(path: str, text: str) -> None:
    with open(path, 'w', encoding='utf-8', newline='') as f:
        f.write(text)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Realign boxes and connectors in Unicode box diagrams.',
        epilog='Example: %(prog)s --in-place notes.md',
    )
    parser.add_argument('paths', nargs='*', default=['-'], help="Diagram text files ('-' or none for stdin)")
    parser.add_argument('-i', '--in-place', action='store_true', help='Rewrite files that change')
    parser.add_argument('-o', '--output', help='Write the result to this file instead of stdout')
    parser.add_argument('--check', action='store_true', help='Write nothing; exit 1 if any input would change')
    parser.add_argument('--tab-width', type=int, default=TAB_WIDTH, help='Spaces per tab')
    parser.add_argument('--tolerance', type=int, default=EDGE_TOLERANCE, help='Columns an edge may drift and still belong to a box')
    parser.add_argument('--cluster-threshold', type=int, default=CLUSTER_THRESHOLD, help='Max centre gap between boxes in one column')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    args = parser.parse_args(argv)

    if args.output and len(args.paths) > 1:
        parser.error('--output takes a single input')
    if args.in_place and '-' in args.paths:
        parser.error('--in-place cannot rewrite stdin')
    try:
        RetouchConfig(args.tab_width, args.tolerance, args.cluster_threshold)
    except ValueError as exc:
        parser.error(str(exc))

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s: %(message)s',
    )

    exit_code = 0
    for path in args.paths:
        name = 'stdin' if path == '-' else path
        try:
            original = read_input(path)
            fixed = retouch_diagram(
                original,
                tab_width=args.tab_width,
                edge_tolerance=args.tolerance,
                cluster_threshold=args.cluster_threshold,
            )
        except FileNotFoundError:
            print(f"Error: File not found: {name}", file=sys.stderr)
            exit_code = 1
            continue
        except PermissionError:
            print(f"Error: Permission denied: {name}", file=sys.stderr)
            exit_code = 1
            continue
        except UnicodeDecodeError as exc:
            print(f"Error: Cannot decode file {name}: {exc.reason}", file=sys.stderr)
            exit_code = 1
            continue
        except (IsADirectoryError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            exit_code = 1
            continue

        changed = fixed != original
        if changed:
            logger.info("Fixed: %s", name)
        else:
            logger.debug("No changes: %s", name)

        if args.check:
            if changed:
                print(f"Would retouch: {name}", file=sys.stderr)
                exit_code = 1
            continue

        try:
            if args.in_place:
                if changed:
                    write_output(path, fixed)
            elif args.output:
                write_output(args.output, fixed)
            else:
                # keep consecutive results on separate lines
                separate = len(args.paths) > 1 and not fixed.endswith('\n')
                print(fixed, end='\n' if separate else '')
        except PermissionError:
            print(f"Error: Permission denied writing {args.output or name}", file=sys.stderr)
            exit_code = 1
        except OSError as exc:
            print(f"Error: Cannot write {args.output or name}: {exc}", file=sys.stderr)
            exit_code = 1

    return exit_code


if __name__ == '__main__':
    sys.exit(main())
