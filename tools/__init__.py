"""MCP tool registrations for ImgSqueeze"""
