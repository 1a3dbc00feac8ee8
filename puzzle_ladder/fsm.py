from __future__ import annotations

from statemachine import State, StateMachine

from puzzle_ladder.api.models import SessionPhase


class SessionFSM(StateMachine):
    """Phases of one play-through.

    idle -> awaiting puzzle -> awaiting answer -> (awaiting puzzle ... | won)

    The engine mutates session state; the FSM only guards which intent is accepted when.
    `begin` is allowed from every phase (a new game abandons the old one) and `abandon`
    returns to idle from anywhere.
    """

    idle = State(SessionPhase.idle.value, value=SessionPhase.idle.value, initial=True)
    awaiting_puzzle = State(SessionPhase.awaiting_puzzle.value, value=SessionPhase.awaiting_puzzle.value)
    awaiting_answer = State(SessionPhase.awaiting_answer.value, value=SessionPhase.awaiting_answer.value)
    won = State(SessionPhase.won.value, value=SessionPhase.won.value)

    begin = (
        idle.to(awaiting_puzzle)
        | awaiting_puzzle.to(awaiting_puzzle)
        | awaiting_answer.to(awaiting_puzzle)
        | won.to(awaiting_puzzle)
    )
    present_puzzle = awaiting_puzzle.to(awaiting_answer)
    puzzle_unavailable = awaiting_puzzle.to(awaiting_puzzle)
    # An answered puzzle is spent: the next answer has to wait for a new puzzle.
    resolve_answer = awaiting_answer.to(awaiting_puzzle)
    finish = awaiting_answer.to(won)
    abandon = idle.to(idle) | awaiting_puzzle.to(idle) | awaiting_answer.to(idle) | won.to(idle)

    @property
    def phase(self) -> SessionPhase:
        return SessionPhase(str(self.current_state.value))

    @property
    def accepts_answers(self) -> bool:
        return self.current_state == self.awaiting_answer

    @property
    def accepts_puzzles(self) -> bool:
        return self.current_state == self.awaiting_puzzle
