import chess
import pytest
from parrychess.errors import IllegalMoveRequested, PositionReconstructionFailure
from parrychess.rules import RulesOracle

FOOLS_MATE = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
STALEMATE = "7k/5Q2/6K1/8/8/8/8/8 b - - 0 1"
# Black to move while White's king stands in check from the a1 rook.
OPPOSITE_CHECK = "8/8/8/8/8/8/6k1/r3K3 b - - 0 1"


def test_moves_from():
    oracle = RulesOracle()
    assert set(oracle.moves_from(chess.E2)) == {chess.E3, chess.E4}
    assert set(oracle.moves_from(chess.G1)) == {chess.F3, chess.H3}
    assert oracle.moves_from(chess.E7) == []
    assert oracle.moves_from(chess.E4) == []


def test_promotion_destinations_are_not_repeated():
    oracle = RulesOracle("8/P7/8/8/8/8/k7/4K3 w - - 0 1")
    assert oracle.moves_from(chess.A7) == [chess.A8]


def test_apply_move():
    oracle = RulesOracle()
    applied = oracle.apply_move(chess.E2, chess.E4)
    assert applied.uci == "e2e4"
    assert applied.san == "e4"
    assert oracle.turn == chess.BLACK


def test_illegal_move_leaves_position():
    oracle = RulesOracle()
    before = oracle.serialize()
    with pytest.raises(IllegalMoveRequested):
        oracle.apply_move(chess.E2, chess.E5)
    with pytest.raises(IllegalMoveRequested):
        oracle.apply_move(chess.E7, chess.E5)
    assert oracle.serialize() == before


def test_promotion_defaults_to_queen():
    oracle = RulesOracle("8/P7/8/8/8/8/k7/4K3 w - - 0 1")
    applied = oracle.apply_move(chess.A7, chess.A8)
    assert applied.promotion == chess.QUEEN
    assert applied.san.startswith("a8=Q")


def test_underpromotion():
    oracle = RulesOracle("8/P7/8/8/8/8/k7/4K3 w - - 0 1")
    applied = oracle.apply_move(chess.A7, chess.A8, chess.KNIGHT)
    assert applied.uci == "a7a8n"


def test_en_passant_and_castling():
    oracle = RulesOracle("rnbqkbnr/ppp1p1pp/8/3pPp2/8/8/PPPP1PPP/RNBQKBNR w KQkq f6 0 3")
    assert oracle.apply_move(chess.E5, chess.F6).san == "exf6"
    assert oracle.board.piece_at(chess.F5) is None
    oracle = RulesOracle("r3k2r/pppppppp/8/8/8/8/PPPPPPPP/R3K2R w KQkq - 0 1")
    assert oracle.apply_move(chess.E1, chess.G1).san == "O-O"
    assert oracle.board.piece_at(chess.F1) == chess.Piece(chess.ROOK, chess.WHITE)


def test_checkmate():
    oracle = RulesOracle(FOOLS_MATE)
    assert oracle.is_in_check(chess.WHITE)
    assert oracle.is_checkmate(chess.WHITE)
    assert not oracle.is_checkmate(chess.BLACK)
    assert oracle.is_game_over()
    assert oracle.status() == "checkmate"
    assert oracle.result() == "0-1"


def test_stalemate():
    oracle = RulesOracle(STALEMATE)
    assert oracle.is_stalemate()
    assert not oracle.is_in_check(chess.BLACK)
    assert oracle.status() == "stalemate"
    assert oracle.result() == "1/2-1/2"


def test_insufficient_material_is_draw():
    oracle = RulesOracle("8/8/8/4k3/8/8/8/4K3 w - - 0 1")
    assert oracle.status() == "draw"


def test_playing():
    oracle = RulesOracle()
    assert oracle.status() == "playing"
    assert oracle.result() is None
    assert not oracle.is_game_over()


def test_load_position_replaces_board():
    oracle = RulesOracle()
    oracle.apply_move(chess.E2, chess.E4)
    oracle.load_position(STALEMATE)
    assert oracle.serialize() == STALEMATE


def test_load_position_tolerates_opposite_check():
    oracle = RulesOracle()
    oracle.load_position(OPPOSITE_CHECK)
    assert oracle.serialize() == OPPOSITE_CHECK
    # The side to move may take the exposed king.
    assert chess.E1 in oracle.moves_from(chess.A1)


@pytest.mark.parametrize("fen", [
    "8/8/8/8/8/8/8/4K3 w - - 0 1",                 # no black king
    "4k3/8/8/8/8/8/8/P3K3 w - - 0 1",              # pawn on the back rank
    "not a fen",
])
def test_load_position_rejects_broken_positions(fen):
    oracle = RulesOracle()
    before = oracle.serialize()
    with pytest.raises(PositionReconstructionFailure):
        oracle.load_position(fen)
    assert oracle.serialize() == before


def test_board_property_is_a_copy():
    oracle = RulesOracle()
    oracle.board.push_san("e4")
    assert oracle.serialize() == chess.STARTING_FEN
