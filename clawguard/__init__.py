"""
ClawGuard - Tool Authorization & Approval Subsystem

Gatekeeper between a personal automation agent and the live system it acts on.

Architecture:
- Sandbox: Allowlisted, shell-free command execution
- Policy: Ordered first-match-wins tool rules per channel/user
- Approvals: Durable human-in-the-loop decisions (poll-based rendezvous)
- Plugin host: Decides which tools an agent may see and run

Key Properties:
- Conversational failures: Blocked or failed actions come back as text
- Fail-closed approvals: No decision within the deadline means deny
- Durable: Approval state survives restarts and spans processes
"""

__version__ = "0.1.0"
