from orchestrator.specialists.base import SpecialistAgent, SpecialistResponse
from orchestrator.specialists.designer import DesignerAgent
from orchestrator.specialists.developer import DeveloperAgent
from orchestrator.specialists.discovery import DiscoveryAgent
from orchestrator.specialists.planner import PlannerAgent
from orchestrator.specialists.reviewer import ReviewerAgent, ReviewVerdict, parse_review_output
from orchestrator.specialists.tech_lead import TechLeadAgent

__all__ = [
    "DesignerAgent",
    "DeveloperAgent",
    "DiscoveryAgent",
    "PlannerAgent",
    "ReviewVerdict",
    "ReviewerAgent",
    "SpecialistAgent",
    "SpecialistResponse",
    "TechLeadAgent",
    "parse_review_output",
]
