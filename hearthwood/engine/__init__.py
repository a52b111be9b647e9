"""Per-character engines used by the day cycle.

  validation  — shape checks for generated output, action fallback
  templates   — weighted deterministic actions (the no-LLM path)
  actions     — context assembly, decide(), outcome and relationship writes
  destiny     — destiny creation, deviation scoring, milestones, recalculation

Submodules are imported directly (hearthwood.engine.actions, ...); the LLM
client depends on validation, so this package keeps no eager imports.
"""
