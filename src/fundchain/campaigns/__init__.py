"""
Campaign model, eligibility rules and the action orchestrator.
"""
