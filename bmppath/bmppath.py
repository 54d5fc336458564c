# =============================================================================
# bmppath: Bitmap to Polyline Path Conversion
# =============================================================================
# Converts a monochrome 1-bit bitmap into the set of closed, axis-aligned
# polylines that outline its filled pixels. The output is jagged but exact,
# which makes it a good fit for blocky raster art such as QR codes and pixel
# glyphs rendered as SVG.
# =============================================================================

import logging
import operator
from typing import NamedTuple, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# =============================================================================
# DIRECTION CONSTANTS
# =============================================================================
# Every corner of the pixel grid can have a boundary edge leaving it in each
# of these four directions.

DIR_UP = 0
DIR_RIGHT = 1
DIR_DOWN = 2
DIR_LEFT = 3

# Corner offset of a single step in each direction, as (dx, dy)
STEP = (
    (0, -1),  # up
    (1, 0),   # right
    (0, 1),   # down
    (-1, 0),  # left
)

# Directions tested at each corner, by current heading. The two turns come
# first and going straight comes last, so straight runs never emit vertices.
TURN_ORDER = (
    (DIR_LEFT, DIR_RIGHT, DIR_UP),    # heading up
    (DIR_UP, DIR_DOWN, DIR_RIGHT),    # heading right
    (DIR_RIGHT, DIR_LEFT, DIR_DOWN),  # heading down
    (DIR_DOWN, DIR_UP, DIR_LEFT),     # heading left
)

# =============================================================================
# SVG OUTPUT CONSTANTS
# =============================================================================

SVG_HEADER = '<?xml version="1.0" encoding="utf-8"?>\n'
SVG_BACKGROUND_FILL = "#fff"  # Fill of the full-canvas background path


# =============================================================================
# ERRORS
# =============================================================================


class BitmapPathError(ValueError):
    """Base class for the input validation errors raised by this module."""


class InvalidWidthError(BitmapPathError):
    """
    Raised when the specified bitmap width is not an integer of at least 1.

    Attributes:
        width: The rejected width
    """

    def __init__(self, width, reason: Optional[str] = None):
        self.width = width
        if reason is None:
            reason = "%s < 1" % (width,)
        super().__init__("invalid width: %s" % reason)


class InvalidBitmapError(BitmapPathError):
    """
    Raised when the source bitmap is missing or its size does not match the
    width.

    Attributes:
        length: Number of bits in the rejected bitmap, or None if unknown
        width: The width the bitmap was checked against, or None
    """

    def __init__(self, reason: str, length: Optional[int] = None, width: Optional[int] = None):
        self.reason = reason
        self.length = length
        self.width = width
        super().__init__("invalid bitmap: %s" % reason)


# =============================================================================
# INPUT HELPERS
# =============================================================================


def bits_from_bytes(data: bytes, length: Optional[int] = None) -> np.ndarray:
    """
    Unpack a byte string into a flat array of bits, most significant bit first.

    Args:
        data: Packed bitmap bytes
        length: Number of bits to keep (default: all of them)

    Returns:
        1-D boolean array
    """
    bits = np.unpackbits(np.frombuffer(bytes(data), dtype=np.uint8)).astype(bool)
    if length is not None:
        bits = bits[:length]
    return bits


def parse_bits(text: str) -> np.ndarray:
    """
    Parse a textual bit string such as "1101/1101" into a flat bit array.

    Whitespace, underscores and slashes are ignored so that rows can be
    written apart. An optional "0b" prefix is accepted.

    Raises:
        ValueError: If the text contains anything other than 0 and 1
    """
    if text.startswith("0b"):
        text = text[2:]
    bits = []
    for i, ch in enumerate(text):
        if ch in "01":
            bits.append(ch == "1")
        elif not (ch.isspace() or ch in "_/"):
            raise ValueError("invalid bit character %r at offset %d" % (ch, i))
    return np.array(bits, dtype=bool)


# =============================================================================
# BITMAP CLASS
# =============================================================================
# Entry point for tracing. Converts the supported input formats into a 2-D
# boolean pixel grid (True = filled) and runs the tracing pipeline on it.


class Bitmap:
    """
    Represents a monochrome bitmap and traces it into closed polyline paths.

    The Bitmap class handles:
    - Input format conversion (numpy arrays, PIL images, flat bit buffers)
    - Validation of the bitmap dimensions
    - The tracing pipeline: edge map, walk, merge and sequencing
    """

    def __init__(self, data, blacklevel: float = 0.5):
        """
        Initialize a Bitmap from a 2-D input.

        Args:
            data: Input data in various formats:
                  - numpy array of bool (True = filled)
                  - numeric numpy array (dark pixels are filled)
                  - PIL Image object
                  - Any 2-D array-like object
            blacklevel: Threshold for converting grayscale to binary (default: 0.5)
                       Pixels darker than this threshold are filled

        Raises:
            InvalidWidthError: If the bitmap has no columns
            InvalidBitmapError: If data is None, not 2-D, or has no rows
        """
        if data is None:
            raise InvalidBitmapError("data is None")

        # Handle PIL Image objects
        if hasattr(data, "mode"):
            if data.mode != "L":
                data = data.convert("L")
            data = data.point(lambda e: 0 if (e / 255.0) < blacklevel else 255)
            # "1" images read back as True for white pixels
            data = ~np.array(data.convert("1"), dtype=bool)

        data = np.asarray(data)
        if data.dtype != bool:
            # Numeric arrays: anything not brighter than the threshold is ink
            data = ~(data > (255 * blacklevel))

        if data.ndim != 2:
            raise InvalidBitmapError("expected a 2-D array, got %d-D" % data.ndim)
        height, width = data.shape
        if width < 1:
            raise InvalidWidthError(width)
        if height < 1:
            raise InvalidBitmapError(
                "too short: len=0 < width=%d" % width, length=0, width=width
            )

        self.data = data

    @classmethod
    def from_bits(cls, bits, width: int) -> "Bitmap":
        """
        Build a Bitmap from a flat, row-major bit buffer.

        Args:
            bits: Anything supporting len() and integer indexing, with each
                  item truthy for a filled pixel. A str is read with
                  parse_bits, so "0101" means two filled pixels.
            width: Number of pixels per row

        Returns:
            A Bitmap of len(bits) // width rows

        Raises:
            InvalidWidthError: If width is not an integer or is < 1
            InvalidBitmapError: If bits is None, shorter than width, or its
                length is not a multiple of width
            ValueError: If bits is a str with characters other than bits
                and separators
        """
        try:
            width = operator.index(width)
        except TypeError:
            raise InvalidWidthError(width, "%r is not an integer" % (width,)) from None
        if width < 1:
            raise InvalidWidthError(width)
        if bits is None:
            raise InvalidBitmapError("bm is None", width=width)
        if isinstance(bits, str):
            bits = parse_bits(bits)
        length = len(bits)
        if length < width:
            raise InvalidBitmapError(
                "too short: len=%d < width=%d" % (length, width),
                length=length,
                width=width,
            )
        if length % width != 0:
            raise InvalidBitmapError(
                "len=%d %% width=%d != 0" % (length, width),
                length=length,
                width=width,
            )

        if isinstance(bits, np.ndarray):
            flat = bits.astype(bool).ravel()
        else:
            flat = np.fromiter((bool(bits[i]) for i in range(length)), dtype=bool, count=length)
        return cls(flat.reshape(length // width, width))

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    def trace(self) -> "Path":
        """
        Trace the bitmap into a set of closed paths.

        Returns:
            Path object holding the merged, canonically ordered rings
        """
        logger.debug("tracing %dx%d bitmap", self.width, self.height)

        # Stage 1: Mark every boundary edge between filled and empty pixels
        flags = _build_edge_map(self.data)

        # Stage 2: Walk the marked edges into closed rings
        arena, contours = _trace_contours(flags)
        logger.debug("walked %d raw contours", len(contours))

        # Stage 3: Splice rings that touch at a corner into one
        merges = _merge_contours(arena, contours)

        # Stage 4: Rotate and order the rings for stable output
        contours = _sequence_contours(arena, contours)
        logger.debug("merged %d contours, %d remaining", merges, len(contours))

        return Path(
            self.width,
            self.height,
            [tuple(arena.vertices(c.head)) for c in contours],
        )


def trace_bits(bits, width: int) -> "Path":
    """
    Trace a flat, row-major bit buffer of the given width.

    This is a shortcut for Bitmap.from_bits(bits, width).trace().
    """
    return Bitmap.from_bits(bits, width).trace()


# =============================================================================
# PATH CLASS
# =============================================================================
# Public result of a trace. Holds the image size and the rings, each as a
# tuple of vertices. The ring is cyclic: the last vertex connects back to the
# first, which is not repeated.


class Vertex(NamedTuple):
    """A corner of the pixel grid that is a vertex of a polyline."""

    x: int
    y: int

    def __str__(self):
        return "(%d, %d)" % (self.x, self.y)


class Path:
    """
    A bitmap image represented as a set of closed polyline paths.

    The rings can be iterated and indexed like a tuple, so path[-1] is the
    last ring. The numbered accessors path_len() and path_string() only take
    ring numbers in [0, num_paths()) and raise IndexError for anything else,
    negative numbers included.

    Attributes:
        width: Width of the source bitmap
        height: Height of the source bitmap
        vertices: Tuple of rings, each a tuple of Vertex
    """

    __slots__ = ("_width", "_height", "_vertices")

    def __init__(self, width: int, height: int, vertices):
        self._width = width
        self._height = height
        self._vertices = tuple(tuple(Vertex(*v) for v in ring) for ring in vertices)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def vertices(self) -> Tuple[Tuple[Vertex, ...], ...]:
        return self._vertices

    def __len__(self):
        return len(self._vertices)

    def __iter__(self):
        return iter(self._vertices)

    def __getitem__(self, n):
        return self._vertices[n]

    def __repr__(self):
        return "Path(width=%d, height=%d, paths=%d)" % (
            self._width,
            self._height,
            len(self._vertices),
        )

    def num_paths(self) -> int:
        """Return the number of closed paths in this set of paths."""
        return len(self._vertices)

    def _ring(self, n: int) -> Tuple[Vertex, ...]:
        # Negative indices are rejected too, paths are numbered from 0
        if not 0 <= n < len(self._vertices):
            raise IndexError(
                "path index %d out of range [0, %d)" % (n, len(self._vertices))
            )
        return self._vertices[n]

    def path_len(self, n: int) -> int:
        """
        Return the number of vertices of the closed path at index n.

        Raises:
            IndexError: If n is not in [0, num_paths())
        """
        return len(self._ring(n))

    def path_string(self, n: int) -> str:
        """
        Return the closed path at index n as "(x0, y0), (x1, y1), ...".

        Raises:
            IndexError: If n is not in [0, num_paths())
        """
        return ", ".join(str(v) for v in self._ring(n))

    # -------------------------------------------------------------------------
    # SVG output
    # -------------------------------------------------------------------------

    def write_svg_d(self, fp) -> None:
        """
        Write the whole set of paths as the 'd' attribute of an SVG <path>.

        Only relative commands are used, starting from the upper left corner
        of the image, so the path can be translated by prepending a move.

        Args:
            fp: Text stream with a write() method
        """
        origin = Vertex(0, 0)
        for ring in self._vertices:
            _write_ring_d(fp, ring, origin)
            origin = ring[0]

    def svg_d_string(self) -> str:
        """Same as write_svg_d, but return the string."""
        parts = _StringSink()
        self.write_svg_d(parts)
        return parts.getvalue()

    def write_svg(self, fp, background: Optional[str] = SVG_BACKGROUND_FILL) -> None:
        """
        Write the traced image as a standalone SVG document.

        Args:
            fp: Text stream with a write() method
            background: Fill of a rectangle covering the whole canvas, drawn
                        beneath the paths; None to leave it out
        """
        fp.write(SVG_HEADER)
        fp.write(
            '<svg version="1.1" xmlns="http://www.w3.org/2000/svg" '
            'viewBox="0 0 %d %d">\n' % (self._width, self._height)
        )
        if background is not None:
            fp.write(
                '<path fill="%s" d="m0,0h%dv%dh-%dz"/>'
                % (background, self._width, self._height, self._width)
            )
        fp.write('<path d="')
        self.write_svg_d(fp)
        fp.write('"/>\n')
        fp.write("</svg>\n")

    def svg_string(self, background: Optional[str] = SVG_BACKGROUND_FILL) -> str:
        """Same as write_svg, but return the document as a string."""
        parts = _StringSink()
        self.write_svg(parts, background=background)
        return parts.getvalue()


class _StringSink(list):
    """Collects write() calls and joins them."""

    def write(self, s: str) -> None:
        self.append(s)

    def getvalue(self) -> str:
        return "".join(self)


def _write_ring_d(fp, ring, origin: Vertex) -> None:
    """
    Write one ring as a relative move, h/v line commands and a close.

    Args:
        fp: Text stream with a write() method
        ring: Vertices of the ring
        origin: Point the initial move is relative to
    """
    c = ring[0]
    dx, dy = c.x - origin.x, c.y - origin.y
    # A negative dy carries its own separator
    sep = "" if dy < 0 else ","
    fp.write("m%d%s%d" % (dx, sep, dy))
    for v in ring[1:]:
        if v.x == c.x:
            fp.write("v%d" % (v.y - c.y))
        elif v.y == c.y:
            fp.write("h%d" % (v.x - c.x))
        c = v
    fp.write("z")


# =============================================================================
# STAGE 1: BOUNDARY EDGE MAP
# =============================================================================
# Each corner of the (width+1) x (height+1) corner grid gets four flags, one
# per direction, marking a boundary edge that leaves the corner that way with
# the filled pixel on its right-hand side. Every corner ends up with an even
# number of flags, so the edges always pair up into closed loops.


def _build_edge_map(pixels: np.ndarray) -> np.ndarray:
    """
    Mark every edge between a filled and an empty pixel.

    Pixels outside the bitmap count as empty, so the image border is traced
    like any other transition.

    Args:
        pixels: 2-D boolean array, True for filled pixels

    Returns:
        Boolean array of shape (4, height+1, width+1) indexed [dir, y, x]
    """
    height, width = pixels.shape
    flags = np.zeros((4, height + 1, width + 1), dtype=bool)

    # Pad one ring of empty pixels around the image
    pix = np.pad(pixels, 1, mode="constant", constant_values=False)

    # Horizontal edges: pixel above vs pixel below each corner row
    above = pix[0:height + 1, 1:width + 1]
    below = pix[1:height + 2, 1:width + 1]
    flags[DIR_RIGHT, :, :width] = ~above & below
    flags[DIR_LEFT, :, 1:] = above & ~below

    # Vertical edges: pixel left vs pixel right of each corner column
    left = pix[1:height + 1, 0:width + 1]
    right = pix[1:height + 1, 1:width + 2]
    flags[DIR_UP, 1:, :] = ~left & right
    flags[DIR_DOWN, :height, :] = left & ~right

    return flags


# =============================================================================
# STAGE 2: CONTOUR WALK
# =============================================================================
# Rings are stored as doubly linked cycles inside one vertex arena. Links are
# plain list indices, so splicing two rings in stage 3 is a matter of
# rewiring four entries.


class _VertexArena:
    """
    Storage for the vertices of all rings of one trace.

    Vertex i has coordinates (x[i], y[i]) and neighbours next[i], prev[i].
    """

    def __init__(self):
        self.x = []
        self.y = []
        self.next = []
        self.prev = []

    def __len__(self):
        return len(self.x)

    def add(self, x: int, y: int, prev: int = -1) -> int:
        """Append a vertex after prev and return its index."""
        i = len(self.x)
        self.x.append(x)
        self.y.append(y)
        self.next.append(-1)
        self.prev.append(prev)
        if prev >= 0:
            self.next[prev] = i
        return i

    def splice(self, v: int, head: int) -> None:
        """
        Insert the cycle starting at head just before vertex v.

        The cycle runs from head to head's predecessor, which ends up linked
        to v.
        """
        tail = self.prev[head]
        before = self.prev[v]
        self.next[before] = head
        self.prev[head] = before
        self.next[tail] = v
        self.prev[v] = tail

    def cycle(self, head: int):
        """Yield the vertex indices of the cycle starting at head."""
        v = head
        while True:
            yield v
            v = self.next[v]
            if v == head:
                break

    def vertices(self, head: int):
        """Yield the (x, y) coordinates of the cycle starting at head."""
        for v in self.cycle(head):
            yield Vertex(self.x[v], self.y[v])


class _Contour:
    """
    One ring under construction.

    head and tail are arena indices. n_vertices counts the vertices added by
    the walk and is only used to order rings before merging. deleted is set
    once the ring has been spliced into another one.
    """

    __slots__ = ("arena", "head", "tail", "n_vertices", "deleted")

    def __init__(self, arena: _VertexArena, x: int, y: int):
        self.arena = arena
        self.head = self.tail = arena.add(x, y)
        self.n_vertices = 1
        self.deleted = False

    def add_vertex(self, x: int, y: int) -> None:
        self.tail = self.arena.add(x, y, prev=self.tail)
        self.n_vertices += 1

    def close(self) -> None:
        self.arena.next[self.tail] = self.head
        self.arena.prev[self.head] = self.tail


def _take(flags: np.ndarray, d: int, x: int, y: int) -> bool:
    """Consume the flag for direction d at corner (x, y), if it is set."""
    if flags[d, y, x]:
        flags[d, y, x] = False
        return True
    return False


def _walk(flags: np.ndarray, arena: _VertexArena, x0: int, y0: int) -> _Contour:
    """
    Follow boundary edges from the corner (x0, y0) until back at it.

    The rightward flag at the start corner must already be consumed. At each
    corner the turns are tried before going straight; a vertex is emitted
    only where the heading changes.

    Args:
        flags: Edge map, updated in place
        arena: Vertex storage for the new ring
        x0: Start corner X coordinate
        y0: Start corner Y coordinate

    Returns:
        The closed ring
    """
    contour = _Contour(arena, x0, y0)
    heading = DIR_RIGHT
    x, y = x0 + 1, y0

    while x != x0 or y != y0:
        for d in TURN_ORDER[heading]:
            if _take(flags, d, x, y):
                break
        else:
            # Unreachable while every corner has an even number of edges
            raise RuntimeError("dead end at corner (%d, %d) heading %d" % (x, y, heading))

        if d != heading:
            contour.add_vertex(x, y)
            heading = d
        dx, dy = STEP[heading]
        x += dx
        y += dy

    contour.close()
    return contour


def _trace_contours(flags: np.ndarray):
    """
    Extract all rings from the edge map, consuming every flag.

    Start corners are picked in row-major order: the first corner with an
    unconsumed rightward edge is the upper left corner of a region that has
    not been traced yet.

    Args:
        flags: Edge map from _build_edge_map, updated in place

    Returns:
        Tuple (arena, contours) of the vertex arena and the list of rings in
        the order they were found
    """
    stride = flags.shape[2]
    # Contiguous view, so consumed flags show up here too
    starts = flags[DIR_RIGHT].reshape(-1)
    arena = _VertexArena()
    contours = []

    # Start flags before the cursor are all consumed, never rescan them
    cursor = 0
    while True:
        pending = np.flatnonzero(starts[cursor:])
        if len(pending) == 0:
            break
        cursor += int(pending[0])
        y, x = divmod(cursor, stride)
        starts[cursor] = False
        contours.append(_walk(flags, arena, x, y))

    return arena, contours


# =============================================================================
# STAGE 3: CONTOUR MERGE
# =============================================================================
# Regions that touch diagonally are walked as separate rings sharing one
# corner. Those rings are spliced together so each connected outline is drawn
# as a single subpath.


def _shared_vertex(arena: _VertexArena, c0: _Contour, c1: _Contour):
    """
    Find the first vertex two rings have in common.

    c0 is scanned in cyclic order from its head and the first of its vertices
    that also lies on c1 wins; it is paired with the first occurrence of that
    point on c1, again counted from c1's head. Rings that touch are at
    distance 0 from each other; any other distance is irrelevant to merging,
    so the vertices are matched by coordinates instead of measured.

    Returns:
        Tuple (vertex of c0, vertex of c1), or None if the rings are disjoint
    """
    points = {}
    for v in arena.cycle(c1.head):
        points.setdefault((arena.x[v], arena.y[v]), v)

    for v in arena.cycle(c0.head):
        match = points.get((arena.x[v], arena.y[v]))
        if match is not None:
            return v, match
    return None


def _merge_contours(arena: _VertexArena, contours: list) -> int:
    """
    Splice together rings that share a vertex until no two rings touch.

    Rings are first ordered by size, largest first, so small rings get
    absorbed by big ones. Merged-away rings stay in the list, flagged deleted.

    Args:
        arena: Vertex storage of the rings
        contours: Rings from the walk; reordered in place

    Returns:
        Number of merges performed
    """
    contours.sort(key=lambda c: c.n_vertices, reverse=True)

    merges = 0
    while True:
        merged = False
        for i, c0 in enumerate(contours):
            if c0.deleted:
                continue
            for c1 in contours[i + 1:]:
                if c1.deleted:
                    continue
                pair = _shared_vertex(arena, c0, c1)
                if pair is not None:
                    arena.splice(*pair)
                    c1.deleted = True
                    merged = True
                    merges += 1
        if not merged:
            break

    return merges


# =============================================================================
# STAGE 4: CANONICALIZE AND SEQUENCE
# =============================================================================


def _normalize(arena: _VertexArena, contour: _Contour) -> None:
    """
    Rotate a ring to start at the vertex nearest the origin.

    The scan stops at the first vertex lying on the origin; otherwise the
    first vertex at the smallest distance wins.
    """
    best = -1
    best_d = 0
    for v in arena.cycle(contour.head):
        d = arena.x[v] * arena.x[v] + arena.y[v] * arena.y[v]
        if best < 0 or d < best_d:
            best, best_d = v, d
            if d == 0:
                break
    contour.head, contour.tail = best, arena.prev[best]


def _sequence_contours(arena: _VertexArena, contours: list) -> list:
    """
    Normalize the surviving rings and chain them by nearest start point.

    Beginning at the origin, the next ring is always the one whose start is
    closest to the start of the previous ring (ties go to the earlier ring in
    the list). This keeps the relative moves between subpaths short.

    Returns:
        The live rings in output order
    """
    pending = [c for c in contours if not c.deleted]
    for c in pending:
        _normalize(arena, c)

    ordered = []
    x0, y0 = 0, 0
    while pending:
        best, best_d = 0, None
        for j, c in enumerate(pending):
            dx, dy = arena.x[c.head] - x0, arena.y[c.head] - y0
            d = dx * dx + dy * dy
            if best_d is None or d < best_d:
                best, best_d = j, d
        c = pending.pop(best)
        x0, y0 = arena.x[c.head], arena.y[c.head]
        ordered.append(c)

    return ordered
