"""Dependency injection container — wires implementations to interfaces."""
from __future__ import annotations
from functools import lru_cache

from anagram.application.assignment_app_service import AssignmentAppService
from anagram.application.puzzle_app_service import PuzzleAppService
from anagram.domain.puzzle.service import PuzzleDomainService
from anagram.persistence.repositories.sqlite.sqlite_assignment_repository import SqliteAssignmentRepository


@lru_cache(maxsize=1)
def get_assignment_repo() -> SqliteAssignmentRepository:
    return SqliteAssignmentRepository()


@lru_cache(maxsize=1)
def get_puzzle_domain_service() -> PuzzleDomainService:
    return PuzzleDomainService()


@lru_cache(maxsize=1)
def get_assignment_app_service() -> AssignmentAppService:
    return AssignmentAppService(repo=get_assignment_repo(), puzzles=get_puzzle_domain_service())


@lru_cache(maxsize=1)
def get_puzzle_app_service() -> PuzzleAppService:
    return PuzzleAppService(puzzles=get_puzzle_domain_service())
