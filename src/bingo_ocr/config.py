"""
Tuning constants for the ticket vision pipeline.

Every heuristic threshold used by the pipeline lives here so the tuning
surface is explicit. Functions take these as keyword defaults.
"""

# Binarizer
SAMPLE_STRIDE = 20          # Sample every 20th pixel on both axes
DEFAULT_LUMINANCE = 128     # Mean red value used when the sample is empty
LUMINANCE_FACTOR = 0.85     # Ink iff red < mean * factor

# Morphological cleaner
CLEAN_ITERATIONS = 2        # Pass 0 = erosion, pass >= 1 = despeckle
DESPECKLE_MIN_NEIGHBORS = 3

# Component detector (ratios are relative to the downsampled image)
DETECT_TARGET_WIDTH = 300
MIN_ASPECT = 0.6
MAX_ASPECT = 2.5
MIN_SIZE_RATIO = 0.03
MAX_WIDTH_RATIO = 0.25

# Grid segmenter
ROWS_PER_TICKET = 3
COLS_PER_TICKET = 6
ROW_MATCH_RATIO = 0.5       # Centre distance, in row heights
TICKET_GAP_RATIO = 0.2      # Rows closer than this belong to the same run
COLUMN_MERGE_RATIO = 0.6    # In average cell widths
COLUMN_STEP_RATIO = 1.05    # Spacing of synthesised columns
CELL_MATCH_RATIO = 0.5
DEFAULT_CELL_SIZE = 50      # Used when a ticket has no cells at all

# Composite assembler
CELL_TILE = 160             # Sprite tile size for every cell
TILE_PADDING = 400          # Keeps the recognizer from merging neighbours
CELL_CROP_MARGIN = 0.32     # Trimmed from each side of a numeric cell
DENSE_INK_NEIGHBORS = 6
INK_FRACTION = 0.01         # Dense-ink share needed to count as content
ID_OFFSET_RATIO = 0.30      # Skip the grid line right of the last cell
ID_WIDTH_RATIO = 1.8
ID_CROP_MARGIN = 0.20       # Vertical trim of the identifier field
ID_MIN_SIZE = 10
ID_DEFAULT_ASPECT = 3
ID_MARKER = COLS_PER_TICKET

# Recognition
RECOGNITION_TIMEOUT_S = 60.0
TESSERACT_PSM = 6           # Single uniform block of text
TESSERACT_WHITELIST = (
    "0123456789/ abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ.-|\\:"
)

# Post-processor
MIN_TEXT_HEIGHT_RATIO = 0.33
MIN_CELL_VALUE = 1
MAX_CELL_VALUE = 99
CONFUSABLE_LETTERS = "ILOSBZAGT"
DIGIT_SUBSTITUTIONS = {
    "I": "1",
    "L": "1",
    "O": "0",
    "B": "8",
    "S": "5",
    "Z": "7",
    "A": "4",
    "G": "6",
    "T": "7",
}
PLACEHOLDER_ID_MAX = 9998

# Image source
MAX_IMAGE_WIDTH = 2000
