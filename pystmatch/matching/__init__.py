from .candidates import (
    MAX_CANDIDATES_COUNT,
    OBSERVATION_SIGMA,
    SEARCH_MARGIN,
    CandidateGenerator,
    CandidatePoint,
    GPSFix,
    as_fixes,
    fixes_from_dataframe,
    matched_to_dataframe,
    observation_probability,
)
from .candidate_graph import (
    CandidateGraphLayer,
    CandidatesConnection,
    CandidatesGraph,
    shortest_path_length,
    transmission_probability,
)
from .viterbi import ViterbiResult, viterbi
from .st_matching import STMatching, st_match
