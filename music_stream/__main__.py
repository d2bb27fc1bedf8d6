from music_stream.server import main

main()
