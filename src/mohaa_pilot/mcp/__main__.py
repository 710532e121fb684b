from mohaa_pilot.mcp.server import main

main()
