from z_ebuild_generator.cli import main

main()
