"""Leave Desk — leave requests with manager and coordinator approval."""
