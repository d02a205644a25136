"""Slack integration for SpotBot.

One handler set serves both deployments. Over HTTP the bot is installed
into many workspaces via OAuth and each workspace binds its own channel
with /setchannel; over Socket Mode it serves a single workspace in a
channel fixed by configuration.
"""
