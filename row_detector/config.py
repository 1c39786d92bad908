from dataclasses import dataclass, field


# =============================================================================
# Labels
# =============================================================================

# Pattern classification
STRAIGHT = "STRAIGHT"
CURVED = "CURVED"
MULTI_PATTERN = "MULTI_PATTERN"

# Sub-pattern roles
MAIN = "MAIN"
BATTER = "BATTER"
BUFFER = "BUFFER"

# Row-to-row traversal
FORWARD = "FORWARD"
SERPENTINE = "SERPENTINE"

# Detection methods, in orchestrator priority order
METHOD_WINDING = "winding-sequence"
METHOD_SEQUENCE = "sequence"
METHOD_WEIGHTED_HDBSCAN = "sequence-weighted-hdbscan"
METHOD_HDBSCAN = "hdbscan"
METHOD_ADAPTIVE_GRID = "adaptive-grid"
METHOD_DBSCAN_DP = "dbscan-douglas-peucker"
METHOD_FALLBACK = "fallback-single-row"
METHOD_NONE = "none"

# Detection methods only run when selected explicitly
METHOD_CURVED = "curved"
METHOD_SPLINE = "spline"
METHOD_PCA_LOESS = "pca-loess"


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class DetectionConfig:
    """Configuration for the row detection pipeline."""

    # Orchestration
    reset_row_numbers: bool = True         # Renumber rows to 1..k after detection
    detect_serpentine: bool = True         # Run endpoint direction detection
    force_direction: str | None = None     # "FORWARD" or "SERPENTINE" overrides detection
    serpentine_min_confidence: float = 0.3 # Min confidence before reordering rows

    # Spacing estimation
    spacing_sample_size: int = 20          # Holes sampled for nearest-neighbour spacing
    default_spacing: float = 3.0           # Fallback spacing in meters

    # Sequence detector
    id_dominance_ratio: float = 0.7        # Share of IDs that must follow one pattern

    # Line fitting
    line_tolerance: float = 2.0            # Max perpendicular distance to a row line (m)
    min_holes_per_line: int = 2            # Smaller rows are dissolved

    # Adaptive grid
    grid_bin_factor: float = 0.8           # Bin width as a fraction of spacing
    min_grid_spacing: float = 0.5          # Spacing below this falls back to default

    # HDBSCAN-style clustering
    min_cluster_fraction: float = 0.1      # minClusterSize = max(2, fraction * n)
    edge_cut_std_factor: float = 1.5       # Cut MST edges above mean + factor * std
    sequence_weight: float = 0.3           # Share of ID-sequence distance in weighted variant

    # DBSCAN + Douglas-Peucker
    dbscan_k: int = 4                      # k for the k-distance elbow
    dbscan_min_pts_fraction: float = 0.05  # minPts = fraction * n, clamped to [2, max]
    dbscan_max_min_pts: int = 5
    dbscan_retry_factor: float = 1.5       # eps multiplier when no cluster is found
    dp_epsilon_factor: float = 0.3         # DP epsilon as a fraction of chain spacing

    # Winding sequence
    winding_window_size: int = 4           # Bearings compared this many steps apart
    winding_reversal_threshold: float = 90.0  # Degrees
    winding_min_holes_per_row: int = 3
    winding_max_id_gap: int = 5            # Larger numeric ID jumps reject winding
    winding_max_jump_factor: float = 3.0   # Legs above factor * median reject winding

    # ID-encoded serpentine
    id_serpentine_distance_ratio: float = 0.7
    id_serpentine_min_score: float = 0.6


@dataclass(frozen=True)
class ClassificationConfig:
    """Thresholds for whole-pattern classification."""
    straight_variance_ratio: float = 5.0   # Above: straight candidate
    curved_variance_ratio: float = 3.0     # Below: curved
    straight_curvature: float = 0.1        # Below: straight candidate
    curved_curvature: float = 0.3          # Above: curved
    max_curvature_neighbors: int = 5
    orientation_neighbors: int = 1         # Neighbours averaged for local bearing
    orientation_tolerance: float = 15.0    # Degrees, circular clustering tolerance
    orientation_separation: float = 30.0   # Min spread between significant clusters
    min_orientation_cluster: int = 3       # Significant cluster size floor
    min_orientation_fraction: float = 0.1  # ... or this share of holes, whichever is larger
    serpentine_change_interval: int = 10   # One dx sign change per this many holes
    batter_min_angle: float = 60.0
    batter_max_angle: float = 120.0


@dataclass(frozen=True)
class CurveConfig:
    """Parameters for principal-curve and B-spline row detection."""
    smoothing: float = 0.3                 # LOESS span as a fraction of holes
    curve_points: int = 50                 # Initial principal-curve resolution
    max_iterations: int = 20
    convergence_tolerance: float = 0.001   # Max point displacement between iterations
    kmeans_iterations: int = 20
    control_point_interval: int = 5        # Every Nth hole becomes a control point
    spline_degree: int = 3
    spline_samples: int = 100
    spline_tolerance_factor: float = 0.5   # Deviation tolerance as a fraction of spacing


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class Hole:
    """A blast hole. row_id and pos_id are written by the detection pipeline."""
    id: str
    x: float
    y: float
    entity_name: str | None = None
    row_id: int | None = None
    pos_id: int | None = None


@dataclass
class PairDirection:
    """Traversal relationship between two adjacent rows."""
    row_index: int
    is_serpentine: bool
    confidence: float
    end_to_start: float     # distance(row.end, next.start)
    start_to_start: float   # distance(row.start, next.start)


@dataclass
class DirectionResult:
    """Row-to-row traversal pattern."""
    pattern: str            # "FORWARD" or "SERPENTINE"
    confidence: float
    directions: list[PairDirection] = field(default_factory=list)
    encoded_in_ids: bool = False
    forced: bool = False
    winding: bool = False


@dataclass
class DetectionResult:
    """Outcome of one orchestrator run."""
    success: bool
    method: str
    rows: list[list[int]]   # Hole indices per row, ordered by pos_id
    row_count: int
    serpentine_pattern: DirectionResult | None = None


@dataclass
class SubPattern:
    """A spatially connected group of holes sharing a local orientation."""
    type: str               # "MAIN", "BATTER" or "BUFFER"
    indices: list[int]
    orientation: float      # Axial bearing in degrees, [0, 180)


@dataclass
class PatternClassification:
    """Whole-pattern classification."""
    type: str               # "STRAIGHT", "CURVED" or "MULTI_PATTERN"
    confidence: float
    sub_patterns: list[SubPattern] = field(default_factory=list)
    is_serpentine_candidate: bool = False
    metrics: dict = field(default_factory=dict)


@dataclass
class SeriesStatistics:
    """Summary of a series of distances (spacings or burdens)."""
    mean: float
    std: float              # Sample std (ddof=1), 0 for fewer than 2 values
    cv: float               # std / mean, 0 when mean is 0
    min: float
    max: float
    count: int
