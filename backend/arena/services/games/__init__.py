"""Game domain services: board, opponent, matches, matchmaking, settlement.

Transport (socket handlers, HTTP routes) talks to the matchmaking
coordinator only; everything below it is unaware of Flask requests.
"""
