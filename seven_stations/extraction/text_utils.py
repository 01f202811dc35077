"""Text splitting helpers shared by the stations."""

import re

# Dialogue cue in "Name: line" form (e.g., "JOHN: Get down!" or "Mara: Why?")
SPEAKER_PATTERN = re.compile(r"^\s*([A-Z][a-zA-Z \.\-\']{0,40}?)\s*(?:\([^)]*\))?:\s*\S", re.MULTILINE)

# Screenplay character cue: an all-caps line on its own (e.g., "MARA (V.O.)")
CHARACTER_CUE_PATTERN = re.compile(r"^\s*([A-Z][A-Z\.\-\' ]{1,30}?)\s*(?:\([^)]*\))?\s*$", re.MULTILINE)

# Scene heading (e.g., "INT. STATION CORRIDOR - NIGHT")
SCENE_HEADING_PATTERN = re.compile(
    r"^\s*(?:INT|EXT|INT\./EXT|I/E)[\.\s]+([A-Z0-9][A-Z0-9 '\-]+?)(?:\s+-\s+[A-Z ]+)?\s*$",
    re.MULTILINE,
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])[\"')\]]*\s+|\n{2,}")
_WORD = re.compile(r"[A-Za-z][A-Za-z'\-]*")

STOPWORDS = frozenset("""
a an the and or but if then so of to in on at by for with from into onto over under
is are was were be been being am do does did has have had having it its this that
these those he she they them his her their him we us our you your i me my mine
not no nor as than too very can could will would shall should may might must
there here when where why how what which who whom whose all any each every some
such only own same just also about after before again against between through
during out off up down once further while because until both few more most other
one two s t don now
""".split())

# Transitions and cues that are capitalized but never characters
NON_CHARACTER_CUES = frozenset({
    "INT", "EXT", "FADE IN", "FADE OUT", "CUT TO", "DISSOLVE TO", "THE END",
    "CONTINUED", "BACK TO", "LATER", "MONTAGE", "END", "SMASH CUT", "TITLE",
    "SUPER", "INTERCUT", "FLASHBACK",
})


def split_sentences(text: str) -> list[str]:
    """Split text into sentences, treating blank lines and cue lines as breaks."""
    sentences = []
    for block in _SENTENCE_SPLIT.split(text):
        for line in block.split("\n"):
            line = line.strip()
            if line:
                sentences.append(line)
    return sentences


def words(text: str) -> list[str]:
    """Lowercased word tokens."""
    return [w.lower() for w in _WORD.findall(text)]


def content_words(text: str) -> list[str]:
    """Word tokens with stopwords and very short words removed."""
    return [w for w in words(text) if w not in STOPWORDS and len(w) > 2]


def normalize_id(name: str) -> str:
    """Normalized identifier for an entity name."""
    normalized = name.strip().lower()
    normalized = re.sub(r"^(?:the|a|an)\s+", "", normalized)
    normalized = "".join(c if c.isalnum() or c.isspace() else "" for c in normalized)
    return "_".join(normalized.split())


def split_beats(sentences: list[str], beats: int = 5) -> list[list[str]]:
    """Group sentences into at most ``beats`` contiguous, near-equal segments."""
    if not sentences:
        return []
    beats = max(1, min(beats, len(sentences)))
    size, remainder = divmod(len(sentences), beats)
    segments = []
    start = 0
    for i in range(beats):
        end = start + size + (1 if i < remainder else 0)
        segments.append(sentences[start:end])
        start = end
    return segments
