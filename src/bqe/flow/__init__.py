"""
Questionnaire flow layer.

graph (structure) -> engine (conditions) -> skip_logic / navigation
(movement) -> progress / checkpoint (bookkeeping) -> session (one
user's run). analyzer checks a flow definition before it is used.
"""
