from dataclasses import dataclass


@dataclass
class SessionStartedEvent:
    session_id: str
    network_id: str
    guest: str
    duration: int  # seconds, as emitted by the contract
    amount: int
    expiry: int
    block_number: int

    @property
    def duration_hours(self) -> float:
        return self.duration / 3600
